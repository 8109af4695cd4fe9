# auctionhouse/routes/auth.py
from flask import Blueprint, request, current_app
from flask_jwt_extended import create_access_token, jwt_required
from sqlalchemy import select
from sqlalchemy.orm import load_only
from ..extensions import db
from ..models import User, ROLE_USER, ROLE_AGENT
from ..security import current_user
from ..utils import api_error, api_ok, money
import logging, time

bp = Blueprint("auth", __name__)
log = logging.getLogger("auctionhouse.auth")

# Roles que cualquiera puede elegir al registrarse
_SELF_SERVICE_ROLES = (ROLE_USER, ROLE_AGENT)


def _bcrypt_cost(pw_hash: str) -> int | None:
    parts = (pw_hash or "").split("$")
    try:
        return int(parts[2]) if len(parts) > 2 else None
    except ValueError:
        return None


def serialize_user(u: User):
    return {
        "id": u.id,
        "email": u.email,
        "name": u.name,
        "role": u.role,
        "balances": {
            "real": money(u.balance_real),
            "virtual": money(u.balance_virtual),
            "usd": money(u.balance_usd),
        },
    }


@bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password")
    role = (data.get("role") or ROLE_USER).upper()
    if not all([name, email, password]):
        return api_error("Faltan campos obligatorios (name, email, password).", code="ValidationFailed")
    if role not in _SELF_SERVICE_ROLES:
        return api_error("Rol no permitido en el registro.", 403, code="Forbidden")
    if db.session.scalar(select(User.id).where(User.email == email)):
        return api_error("El correo ya está registrado.", 409, code="Conflict")

    u = User(name=name, email=email, role=role)
    u.set_password(password)
    db.session.add(u)
    db.session.commit()
    log.info("register:ok email=%s role=%s", email, role)
    return api_ok(serialize_user(u))


@bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        return api_error("Faltan credenciales.", code="ValidationFailed")

    t0 = time.perf_counter()
    u = db.session.execute(
        select(User)
        .options(load_only(User.id, User.email, User.name, User.role, User.password_hash, User.is_active))
        .where(User.email == email)
    ).scalar_one_or_none()

    if not u or not u.check_password(password):
        log.info("login:fail email=%s total=%.3fs", email, time.perf_counter() - t0)
        return api_error("Credenciales inválidas.", 401, code="Unauthorized")
    if not u.is_active:
        return api_error("Cuenta desactivada.", 401, code="Unauthorized")

    # Rehash progresivo si el cost vigente es mayor que el deseado
    desired_cost = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    current_cost = _bcrypt_cost(u.password_hash) or desired_cost
    if current_cost > desired_cost:
        u.set_password(password)
        db.session.commit()

    token = create_access_token(identity=str(u.id), additional_claims={"role": u.role})
    log.info("login:ok email=%s total=%.3fs", email, time.perf_counter() - t0)
    return api_ok({"token": token, "user": {"id": u.id, "email": u.email, "name": u.name, "role": u.role}})


@bp.get("/me")
@jwt_required()
def me():
    return api_ok(serialize_user(current_user()))


@bp.post("/change-password")
@jwt_required()
def change_password():
    data = request.get_json(silent=True) or {}
    old_pwd = data.get("old_password")
    new_pwd = data.get("new_password")
    if not old_pwd or not new_pwd:
        return api_error("Faltan campos (old_password, new_password).", code="ValidationFailed")

    u = current_user()
    if not u.check_password(old_pwd):
        return api_error("La contraseña actual no es correcta.", 401, code="Unauthorized")

    u.set_password(new_pwd)
    db.session.commit()
    return api_ok({"message": "Contraseña actualizada"})
