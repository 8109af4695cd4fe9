"""Lado publicador: la API empuja eventos al broadcaster.

La conexión se mantiene en un hilo propio. Si se cae, se reintenta con un
retardo fijo (5 s por defecto), sin jitter y sin límite de intentos.
Mientras no hay conexión, ``publish`` descarta el evento: la entrega en vivo
es best-effort y el espectador se re-sincroniza consultando el estado.
"""
import logging
import threading

import socketio

from .events import internal_broadcast, INTERNAL_BROADCAST

log = logging.getLogger("auctionhouse.live.publisher")


class NullPublisher:
    """Para cuando no hay broadcaster configurado."""

    connected = False

    def start(self):
        pass

    def publish(self, auction_id, event):
        log.debug("live: sin broadcaster, se descarta %s de la subasta %s", event.get("type"), auction_id)
        return False

    def close(self):
        pass


def _default_client():
    return socketio.Client(reconnection=False, logger=False, engineio_logger=False)


class LivePublisher:
    def __init__(self, url, secret, namespace="/live", reconnect_delay=5.0, client_factory=_default_client):
        self.url = url
        self.secret = secret
        self.namespace = namespace
        self.reconnect_delay = reconnect_delay
        self._client_factory = client_factory
        self._client = None
        self._stop = threading.Event()
        self._thread = None

    @property
    def connected(self):
        client = self._client
        return bool(client is not None and client.connected and self.namespace in client.namespaces)

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="live-publisher", daemon=True)
        self._thread.start()

    def _run(self):
        while not self._stop.is_set():
            client = self._client_factory()
            self._client = client
            try:
                client.connect(self.url, namespaces=[self.namespace], auth={"secret": self.secret})
                log.info("live: publisher conectado a %s", self.url)
                client.wait()
                log.warning("live: publisher desconectado de %s", self.url)
            except socketio.exceptions.ConnectionError as exc:
                log.warning("live: no se pudo conectar a %s: %s", self.url, exc)
            if self._stop.wait(self.reconnect_delay):
                break
            log.info("live: reintentando conexión con %s", self.url)

    def publish(self, auction_id, event):
        """Fire-and-forget. Devuelve False si el evento se descartó."""
        client = self._client
        if not self.connected:
            log.warning("live: broadcaster desconectado, se descarta %s de la subasta %s",
                        event.get("type"), auction_id)
            return False
        try:
            client.emit(INTERNAL_BROADCAST, internal_broadcast(event), namespace=self.namespace)
        except socketio.exceptions.SocketIOError as exc:
            log.warning("live: fallo al publicar %s de la subasta %s: %s", event.get("type"), auction_id, exc)
            return False
        return True

    def close(self):
        self._stop.set()
        client = self._client
        if client is not None and client.connected:
            client.disconnect()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.reconnect_delay + 1)
