"""Proceso broadcaster: fan-out en vivo de pujas y estados de subasta.

Los espectadores se conectan al namespace Socket.IO (``/live`` por defecto)
o al stream SSE. La API publica a través de ``internal_broadcast`` con el
secreto compartido en el ``auth`` del handshake, o por ``POST /broadcast``.
"""
import logging
from hmac import compare_digest
from typing import Optional

from flask import Blueprint, Flask, current_app, request
from flask_socketio import Namespace, emit, disconnect
from flask_jwt_extended import decode_token

from ..config import Config
from ..extensions import db, jwt, cors, socketio
from ..logging_setup import configure_logging
from ..models import Product, User, utcnow
from ..services.lifecycle import due_status
from ..utils import api_ok, api_error, register_error_handlers
from . import events
from .registry import SubscriberRegistry, SocketSubscriber
from .sse import stream, sse_response

log = logging.getLogger("auctionhouse.live")

bp = Blueprint("live", __name__)


def _secret_ok(candidate) -> bool:
    expected = current_app.config["BROADCAST_SECRET"]
    if not candidate or not expected:
        return False
    return compare_digest(str(candidate).encode("utf-8"), expected.encode("utf-8"))


def _extract_uid_from_token(token: Optional[str]) -> Optional[int]:
    if not token:
        return None
    try:
        decoded = decode_token(token)
        sub = decoded.get("sub")
        if sub is None:
            return None
        return int(sub)
    except Exception:
        return None


def _auction_id(data) -> Optional[int]:
    raw = (data or {}).get("auctionId") or (data or {}).get("productId")
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class LiveNamespace(Namespace):
    def __init__(self, namespace, registry):
        super().__init__(namespace)
        self.registry = registry
        # sid -> {"user_id": ..., "trusted": ...}
        self.sessions = {}

    def _subscriber(self):
        return SocketSubscriber(self.socketio, request.sid, self.namespace)

    def _error(self, message):
        emit("error", {"type": "error", "message": message})

    def on_connect(self, auth=None):
        auth = auth if isinstance(auth, dict) else {}
        trusted = _secret_ok(auth.get("secret"))
        uid = _extract_uid_from_token(auth.get("token"))
        self.sessions[request.sid] = {"user_id": uid, "trusted": trusted}
        if trusted:
            log.info("live: publisher conectado sid=%s", request.sid)
        emit("connected", {"type": "connected", "userId": uid})

    def on_disconnect(self, reason=None):
        self.sessions.pop(request.sid, None)
        dropped = self.registry.remove(self._subscriber())
        log.debug("live: sid=%s desconectado (%s), deja %d subastas", request.sid, reason, len(dropped))

    def on_authenticate(self, data):
        uid = _extract_uid_from_token((data or {}).get("token"))
        user = db.session.get(User, uid) if uid else None
        if not user or not user.is_active:
            emit("auth_error", {"type": "auth_error", "message": "Autenticación fallida"})
            disconnect()
            return
        self.sessions.setdefault(request.sid, {"trusted": False})["user_id"] = user.id
        emit("authenticated", {"type": "authenticated", "userId": user.id})

    def on_join_auction(self, data):
        session = self.sessions.get(request.sid, {})
        if not session.get("user_id") and not (data or {}).get("anonymous"):
            return self._error("Autentícate primero o únete como anónimo")
        auction_id = _auction_id(data)
        product = db.session.get(Product, auction_id) if auction_id else None
        if not product:
            return self._error("Subasta no encontrada")

        self.registry.subscribe(product.id, self._subscriber())
        status = due_status(product.auction_status, product.start_time, product.end_time, utcnow())
        emit("auction_joined", {
            "type": "auction_joined",
            "productId": product.id,
            "product": events.auction_snapshot(product, status),
        })

    def on_leave_auction(self, data):
        auction_id = _auction_id(data)
        if auction_id is None:
            return
        self.registry.unsubscribe(auction_id, self._subscriber())
        emit("auction_left", {"type": "auction_left", "productId": auction_id})

    def on_internal_broadcast(self, data):
        if not self.sessions.get(request.sid, {}).get("trusted"):
            self._error("internal_broadcast solo para publicadores de confianza")
            return {"delivered": 0}
        action = (data or {}).get("action")
        payload = (data or {}).get("data") or {}
        auction_id = _auction_id(payload)
        if action not in events.EVENT_TYPES or auction_id is None:
            self._error("Broadcast inválido")
            return {"delivered": 0}
        delivered = self.registry.publish(auction_id, dict(payload, type=action))
        return {"delivered": delivered}

    def on_ping(self, data=None):
        emit("pong", {"type": "pong"})


def _registry() -> SubscriberRegistry:
    return current_app.extensions["live_registry"]


@bp.get("/health")
def health():
    reg = _registry()
    return api_ok({"status": "ok", "connections": reg.count(), "auctions": reg.auction_count()})


@bp.post("/broadcast")
def broadcast():
    if not _secret_ok(request.headers.get("X-Broadcast-Secret")):
        return api_error("Publicador no autorizado.", 403, code="Forbidden")
    body = request.get_json(silent=True) or {}
    action = body.get("action")
    data = body.get("data") or {}
    auction_id = _auction_id(data)
    if action not in events.EVENT_TYPES or auction_id is None:
        return api_error("Falta action o data.productId válidos.", 400, code="ValidationFailed")
    delivered = _registry().publish(auction_id, dict(data, type=action))
    log.info("live: broadcast %s subasta=%s entregado=%d", action, auction_id, delivered)
    return api_ok({"delivered": delivered})


@bp.get("/sse/auctions/<int:auction_id>")
def sse_auction(auction_id):
    return sse_response(stream(_registry(), auction_id, current_app.config["SSE_QUEUE_SIZE"]))


def create_broadcaster_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config())
    if overrides:
        app.config.update(overrides)
    configure_logging(app)

    db.init_app(app)
    jwt.init_app(app)
    cors.init_app(app, resources={r"/sse/*": {"origins": app.config["CORS_ORIGINS"]}})
    socketio.init_app(
        app,
        cors_allowed_origins=app.config["CORS_ORIGINS"],
        cors_credentials=True,
    )

    registry = SubscriberRegistry()
    app.extensions["live_registry"] = registry
    socketio.on_namespace(LiveNamespace(app.config["LIVE_NAMESPACE"], registry))

    app.register_blueprint(bp)
    register_error_handlers(app)
    return app
