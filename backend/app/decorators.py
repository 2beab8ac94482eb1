# Overview: Request decorators for API routes.

from functools import wraps
from flask import current_app, g, request

from .extensions import db
from .services.actor_service import resolve_actor


def with_actor(f):
    """
    Resolve the acting user into g.actor.

    Never rejects a request: an unknown caller is attributed to "Unknown".
    Sources, in order: bearer session token, X-User-* headers,
    created_by_* body fields.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        body = request.get_json(silent=True)
        g.actor = resolve_actor(
            db.session,
            request.headers,
            body if isinstance(body, dict) else None,
            logger=current_app.logger,
        )
        return f(*args, **kwargs)

    return decorated_function
