# Overview: Opaque bearer tokens; issue, validate and revoke. Used for actor attribution.

"""
Session Token Management

Tokens are cryptographically secure, stored only as SHA-256 hashes, and
time-limited. Password login lives outside this service; tokens are issued
by the CLI (`flask users issue-token`) or by an upstream login service that
shares the database.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..models import SessionToken, User
from app.time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)


@dataclass
class SessionContext:
    user: User
    session: SessionToken


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Tokens are already high-entropy, so a fast hash is sufficient.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(session, user_id: int, *, lifetime: timedelta = SESSION_ABSOLUTE_TIMEOUT) -> tuple[SessionToken, str]:
    """
    Create a session token for an active user.

    Returns (session_record, plaintext_token). Commits.
    Raises ValueError if the user does not exist or is inactive.
    """
    user = session.query(User).filter_by(id=user_id).first()
    if not user or not user.is_active:
        raise ValueError("User not found or inactive")

    plaintext_token = generate_token()
    now = utcnow()
    record = SessionToken(
        user_id=user.id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + lifetime,
        is_revoked=False,
    )
    session.add(record)
    session.commit()
    return record, plaintext_token


def validate_session(session, token: str) -> SessionContext | None:
    """
    Return SessionContext for a valid token, else None.

    Read-only: attribution runs on every mutating request and must not add
    a write of its own. Returns None for unknown, expired or revoked tokens
    and for deactivated users.
    """
    if not token:
        return None
    record = (
        session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )
    if not record:
        return None

    expires_at = record.expires_at
    if expires_at is not None and expires_at.tzinfo is not None:
        expires_at = expires_at.replace(tzinfo=None)
    if expires_at is None or expires_at <= utcnow():
        return None

    user = session.query(User).filter_by(id=record.user_id).first()
    if not user or not user.is_active:
        return None

    return SessionContext(user=user, session=record)


def revoke_session(session, token: str) -> bool:
    record = session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not record or record.is_revoked:
        return False
    record.is_revoked = True
    record.revoked_at = utcnow()
    session.commit()
    return True
