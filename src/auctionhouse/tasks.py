import logging
from flask import current_app
from . import deps
from .extensions import db

log = logging.getLogger("auctionhouse.tasks")


def sweep_auctions(app=None):
    """Abre y cierra subastas según la hora (con contexto de app y sesión limpia)."""
    if app is None:
        app = current_app._get_current_object()
    with app.app_context():
        try:
            changed = deps.lifecycle().sweep()
            if changed:
                log.info("sweep: %d subastas cambiaron de estado", changed)
            return changed
        finally:
            db.session.remove()


def schedule_jobs(scheduler, app):
    scheduler.add_job(
        id="sweep_auctions",
        func=sweep_auctions,
        trigger="interval",
        seconds=app.config["SWEEP_INTERVAL_SECONDS"],
        args=[app],
        coalesce=True,
        max_instances=1,
        replace_existing=True,
    )
