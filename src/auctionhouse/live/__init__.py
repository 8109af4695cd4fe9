import atexit
from .publisher import LivePublisher, NullPublisher


def init_publisher(app):
    """Crea el publicador de la app; vive lo que vive el proceso."""
    url = app.config.get("LIVE_BROADCAST_URL")
    if url:
        publisher = LivePublisher(
            url,
            app.config["BROADCAST_SECRET"],
            namespace=app.config["LIVE_NAMESPACE"],
            reconnect_delay=app.config["LIVE_RECONNECT_DELAY"],
        )
        publisher.start()
        atexit.register(publisher.close)
    else:
        publisher = NullPublisher()
    app.extensions["live_publisher"] = publisher
    return publisher
