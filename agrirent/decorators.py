from functools import wraps

from flask import abort
from flask_login import current_user

from agrirent.models.enums import Role
from agrirent.services.access_policy import Actor


def current_actor():
    """Explicit identity handed to the service layer."""
    if not current_user.is_authenticated:
        abort(401)
    return Actor.of(current_user)


def role_required(*roles):
    allowed = {Role.parse(role) for role in roles}

    def wrapper(func):
        @wraps(func)
        def inner(*args, **kwargs):
            if current_actor().role not in allowed:
                abort(403)
            return func(*args, **kwargs)

        return inner

    return wrapper
