"""Bearer-token identity resolution.

Tokens are issued by the identity service; this side only verifies them and
maps the ``sub`` claim to a local user.
"""

import jwt
from flask import current_app

from agrirent.extensions import db, login_manager
from agrirent.models import User


def decode_token(token):
    return jwt.decode(
        token,
        current_app.config["JWT_SECRET_KEY"],
        algorithms=[current_app.config["JWT_ALGORITHM"]],
        options={"require": ["sub", "exp"]},
    )


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.request_loader
def load_user_from_request(request):
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    try:
        claims = decode_token(token.strip())
    except jwt.ExpiredSignatureError:
        current_app.logger.info("Expired bearer token")
        return None
    except jwt.InvalidTokenError as exc:
        current_app.logger.warning("Invalid bearer token: %s", exc)
        return None
    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError):
        current_app.logger.warning("Bearer token subject is not a user id")
        return None
    user = db.session.get(User, user_id)
    if not user or not user.is_active_user:
        return None
    return user
