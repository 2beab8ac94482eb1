# Overview: Resolves who is acting on a request; never fails the request.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from . import session_service


UNKNOWN_ACTOR_NAME = "Unknown"


@dataclass(frozen=True)
class Actor:
    user_id: Optional[int]
    name: str
    location_id: Optional[int] = None
    # token | headers | body | anonymous
    source: str = "anonymous"

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "location_id": self.location_id,
            "source": self.source,
        }


ANONYMOUS = Actor(user_id=None, name=UNKNOWN_ACTOR_NAME)


def _as_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _as_name(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text[:128] or None


def resolve_actor(
    session,
    headers: Mapping[str, str],
    body: Optional[Mapping] = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> Actor:
    """
    Attribution order:
    1. Authorization: Bearer <session token>
    2. X-User-Id / X-User-Name / X-User-Email headers
    3. created_by_user_id / created_by_name in the body
    4. "Unknown"

    The actor location comes from the token's user; header/body callers may
    send X-Location-Id. Any lookup failure falls through to the next source.
    """
    logger = logger or logging.getLogger(__name__)
    body = body or {}
    header_location = _as_int(headers.get("X-Location-Id"))

    auth_header = headers.get("Authorization") or ""
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        try:
            context = session_service.validate_session(session, token)
        except SQLAlchemyError:
            session.rollback()
            logger.warning("Session lookup failed; falling back to header attribution", exc_info=True)
            context = None
        if context is not None:
            user = context.user
            return Actor(
                user_id=user.id,
                name=user.label,
                location_id=user.location_id or header_location,
                source="token",
            )

    header_id = _as_int(headers.get("X-User-Id"))
    header_name = _as_name(headers.get("X-User-Name")) or _as_name(headers.get("X-User-Email"))
    if header_id is not None or header_name:
        return Actor(
            user_id=header_id,
            name=header_name or UNKNOWN_ACTOR_NAME,
            location_id=header_location,
            source="headers",
        )

    body_id = _as_int(body.get("created_by_user_id"))
    body_name = _as_name(body.get("created_by_name"))
    if body_id is not None or body_name:
        return Actor(
            user_id=body_id,
            name=body_name or UNKNOWN_ACTOR_NAME,
            location_id=header_location,
            source="body",
        )

    return Actor(user_id=None, name=UNKNOWN_ACTOR_NAME, location_id=header_location)
