from functools import wraps
from flask import request, session, g, current_app
import jwt

from auctions_service.utils.responses import err


def current_user_id() -> int | None:
    """Caller identity from the auth service's Bearer JWT or its session cookie."""
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        token = auth.split(" ", 1)[1]
        try:
            payload = jwt.decode(
                token,
                current_app.config["JWT_SECRET"],
                algorithms=[current_app.config.get("JWT_ALGO", "HS256")],
            )
        except jwt.PyJWTError:
            return None
        sub = payload.get("sub")
    else:
        sub = session.get("user_id")
    try:
        return int(sub) if sub is not None else None
    except (TypeError, ValueError):
        return None


def require_user(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        user_id = current_user_id()
        if user_id is None:
            return err("unauthorized", 401, "Please sign in")
        g.user_id = user_id
        return func(*args, **kwargs)

    return wrapper
