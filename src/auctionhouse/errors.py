"""Errores de la API con código estable.

Cada error lleva un ``code`` legible por máquina, un status HTTP y datos
extra opcionales que se serializan junto al mensaje.
"""


class ApiError(Exception):
    code = "InternalError"
    status = 500
    default_message = "Error interno."

    def __init__(self, message=None, **extra):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.extra = extra

    def to_dict(self):
        return {"code": self.code, "message": self.message, **self.extra}


class ValidationFailed(ApiError):
    code = "ValidationFailed"
    status = 400
    default_message = "Datos inválidos."


class Unauthorized(ApiError):
    code = "Unauthorized"
    status = 401
    default_message = "Autenticación requerida."


class Forbidden(ApiError):
    code = "Forbidden"
    status = 403
    default_message = "Permisos insuficientes."


class ForbiddenSelfBid(Forbidden):
    code = "ForbiddenSelfBid"
    default_message = "El vendedor no puede pujar en su propia subasta."


class NotFound(ApiError):
    code = "NotFound"
    status = 404
    default_message = "Recurso no encontrado."


class AuctionNotActive(ApiError):
    code = "AuctionNotActive"
    status = 409
    default_message = "La subasta no está activa."


class BidTooLow(ApiError):
    code = "BidTooLow"
    status = 400
    default_message = "La oferta es menor al mínimo requerido."


class Conflict(ApiError):
    code = "Conflict"
    status = 409
    default_message = "Otra operación modificó el recurso; intenta de nuevo."


class InternalError(ApiError):
    pass
