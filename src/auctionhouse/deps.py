from flask import current_app
from .extensions import db
from .services import AuctionLifecycle, BidLedger


def publisher():
    return current_app.extensions["live_publisher"]


def lifecycle():
    return AuctionLifecycle(db.session, publisher())


def ledger():
    cfg = current_app.config
    return BidLedger(
        db.session,
        publisher(),
        increment_default=cfg["MIN_INCREMENT_DEFAULT"],
        max_attempts=cfg["BID_MAX_ATTEMPTS"],
    )
