"""Middleware for the authenticated actor context."""
from functools import wraps
from flask import g, request, current_app

from salesdesk.exceptions import UnauthorizedError


def load_actor():
    """
    Load the authenticated actor id into g.

    Authentication happens upstream; the gateway forwards the user id in the
    configured header. Sets g.actor_id to an int, or None when absent or
    malformed.
    """
    g.actor_id = None
    header = current_app.config.get('ACTOR_HEADER', 'X-Actor-Id')
    raw = request.headers.get(header)
    if not raw:
        return
    try:
        g.actor_id = int(raw)
    except ValueError:
        current_app.logger.warning(f"Ignoring malformed {header} header: {raw!r}")


def require_actor(f):
    """Decorator: Require an authenticated actor for the request."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('actor_id') is None:
            raise UnauthorizedError()
        return f(*args, **kwargs)
    return decorated_function
