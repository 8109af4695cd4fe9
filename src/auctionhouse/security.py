from functools import wraps
from flask_jwt_extended import get_jwt_identity, jwt_required
from .errors import Forbidden, Unauthorized
from .extensions import db
from .models import User


def current_user_id():
    raw = get_jwt_identity()
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise Unauthorized("Token inválido.")


def current_user():
    uid = current_user_id()
    user = db.session.get(User, uid) if uid is not None else None
    if user is None or not user.is_active:
        raise Unauthorized("Usuario no encontrado o inactivo.")
    return user


def roles_required(*roles):
    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            if current_user().role not in roles:
                raise Forbidden("Permisos insuficientes para esta acción.")
            return fn(*args, **kwargs)
        return wrapper
    return decorator
