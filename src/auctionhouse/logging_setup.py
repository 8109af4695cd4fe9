import logging


def configure_logging(app):
    """Nivel del logger raíz del paquete; los módulos usan getLogger("auctionhouse.x")."""
    level = app.config.get("LOG_LEVEL", "INFO")
    logger = logging.getLogger("auctionhouse")
    logger.setLevel(level)
    if not logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
    app.logger.setLevel(level)
