import logging
import threading
from queue import Queue, Full

log = logging.getLogger("auctionhouse.live")


class SubscriberGone(Exception):
    """El suscriptor ya no puede recibir eventos."""


class SocketSubscriber:
    """Una conexión Socket.IO identificada por su sid."""

    def __init__(self, socketio, sid, namespace):
        self.socketio = socketio
        self.sid = sid
        self.namespace = namespace

    def send(self, event):
        if not self.socketio.server.manager.is_connected(self.sid, self.namespace):
            raise SubscriberGone(self.sid)
        self.socketio.emit(event["type"], event, to=self.sid, namespace=self.namespace)

    def __eq__(self, other):
        return isinstance(other, SocketSubscriber) and (self.sid, self.namespace) == (other.sid, other.namespace)

    def __hash__(self):
        return hash((self.sid, self.namespace))

    def __repr__(self):
        return f"<SocketSubscriber {self.sid}>"


class QueueSubscriber:
    """Un cliente SSE: cola acotada que drena el generador del stream."""

    def __init__(self, maxsize=100):
        self.queue = Queue(maxsize=maxsize)

    def send(self, event):
        try:
            self.queue.put_nowait(event)
        except Full:
            raise SubscriberGone("cola llena")


class SubscriberRegistry:
    """auction_id -> suscriptores activos.

    El mapa se protege con un mutex. Cada subasta tiene además su propio lock
    de envío, así los eventos de una subasta salen en el orden publicado
    mientras subastas distintas avanzan en paralelo.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subs = {}
        self._send_locks = {}

    def subscribe(self, auction_id, subscriber):
        with self._lock:
            self._subs.setdefault(auction_id, set()).add(subscriber)
            self._send_locks.setdefault(auction_id, threading.Lock())

    def unsubscribe(self, auction_id, subscriber):
        with self._lock:
            subs = self._subs.get(auction_id)
            if not subs or subscriber not in subs:
                return False
            subs.discard(subscriber)
            if not subs:
                del self._subs[auction_id]
                self._send_locks.pop(auction_id, None)
            return True

    def remove(self, subscriber):
        """Quita al suscriptor de todas las subastas; devuelve cuáles."""
        with self._lock:
            dropped = [aid for aid, subs in self._subs.items() if subscriber in subs]
            for aid in dropped:
                self._subs[aid].discard(subscriber)
                if not self._subs[aid]:
                    del self._subs[aid]
                    self._send_locks.pop(aid, None)
        return dropped

    def subscribers(self, auction_id):
        with self._lock:
            return list(self._subs.get(auction_id, ()))

    def count(self, auction_id=None):
        with self._lock:
            if auction_id is not None:
                return len(self._subs.get(auction_id, ()))
            return len({s for subs in self._subs.values() for s in subs})

    def auction_count(self):
        with self._lock:
            return len(self._subs)

    def _send_lock(self, auction_id):
        with self._lock:
            return self._send_locks.get(auction_id)

    def publish(self, auction_id, event):
        """Entrega best-effort; devuelve a cuántos llegó.

        Un envío fallido saca al suscriptor del registro (conexión muerta).
        No se reintenta ni se encola para después.
        """
        delivered = 0
        lock = self._send_lock(auction_id)
        if lock is None:
            log.debug("live: %s sin suscriptores en la subasta %s", event.get("type"), auction_id)
            return delivered
        with lock:
            for sub in self.subscribers(auction_id):
                try:
                    sub.send(event)
                    delivered += 1
                except Exception as exc:
                    log.warning("live: suscriptor %r caído en subasta %s (%s); se elimina",
                                sub, auction_id, exc)
                    self.remove(sub)
        log.debug("live: %s a %d suscriptores de la subasta %s",
                  event.get("type"), delivered, auction_id)
        return delivered
