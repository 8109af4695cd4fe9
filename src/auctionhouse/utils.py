from decimal import Decimal, InvalidOperation
from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from .errors import ApiError, ValidationFailed
from .extensions import db

CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("9999999999.99")

_HTTP_CODES = {401: "Unauthorized", 403: "Forbidden", 404: "NotFound", 405: "ValidationFailed", 409: "Conflict"}


def api_error(message, status=400, code=None, **extra):
    error = {"message": message, **extra}
    if code:
        error["code"] = code
    return jsonify({"ok": False, "error": error}), status


def api_ok(data=None, **extra):
    return jsonify({"ok": True, "data": data, **extra})


def iso(dt):
    return dt.isoformat() + "Z" if dt else None


def money(value):
    """Decimal -> número JSON. Única conversión, en el borde."""
    if value is None:
        return None
    return float(value)


def parse_money(value, field="amount", allow_none=False):
    if value is None or value == "":
        if allow_none:
            return None
        raise ValidationFailed(f"Falta el campo {field}.", field=field)
    if isinstance(value, bool):
        raise ValidationFailed(f"{field} debe ser numérico.", field=field)
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationFailed(f"{field} debe ser numérico.", field=field)
    if not amount.is_finite() or amount <= 0:
        raise ValidationFailed(f"{field} debe ser mayor que cero.", field=field)
    if amount > MAX_AMOUNT:
        raise ValidationFailed(f"{field} excede el máximo permitido.", field=field)
    if amount != amount.quantize(CENT):
        raise ValidationFailed(f"{field} admite como máximo dos decimales.", field=field)
    return amount.quantize(CENT)


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def _api_error(exc):
        if exc.status >= 500:
            app.logger.error("api:%s %s", exc.code, exc.message)
        # extra puede traer "status" (estado de la subasta); no pasa por la firma de api_error
        return jsonify({"ok": False, "error": exc.to_dict()}), exc.status

    @app.errorhandler(SQLAlchemyError)
    def _store_error(exc):
        db.session.rollback()
        app.logger.exception("Error de base no controlado")
        return api_error("Error interno.", 500, code="InternalError")

    @app.errorhandler(HTTPException)
    def _http_error(exc):
        code = _HTTP_CODES.get(exc.code, "InternalError" if exc.code >= 500 else "ValidationFailed")
        return api_error(exc.description or exc.name, exc.code, code=code)
