"""Ciclo de vida de la subasta: SCHEDULED -> LIVE -> {ENDED, CANCELLED}.

Las transiciones por tiempo se evalúan con un único predicado,
``due_status``; su forma SQL, ``status_clause``, la usan los listados.
La lectura perezosa (``refresh``) y el barrido periódico (``sweep``)
escriben con un update condicional sobre el estado observado.
"""
import logging

from sqlalchemy import and_, or_, select, update

from ..errors import AuctionNotActive, Forbidden, NotFound
from ..live import events
from ..models import (
    Bid, Product, SCHEDULED, LIVE, ENDED, CANCELLED, TERMINAL_STATUSES,
    LISTING_SOLD, ADMIN_ROLES, utcnow,
)
from .notifications import notify

log = logging.getLogger("auctionhouse.lifecycle")


def due_status(status, start_time, end_time, now):
    if status in TERMINAL_STATUSES:
        return status
    if status == SCHEDULED and start_time is not None and now >= start_time:
        status = LIVE
    if status == LIVE and end_time is not None and now >= end_time:
        return ENDED
    return status


def status_clause(status, now):
    """Condición SQL equivalente a ``due_status(...) == status``."""
    started = Product.start_time <= now
    over = Product.end_time <= now
    if status == SCHEDULED:
        return and_(Product.auction_status == SCHEDULED, Product.start_time > now)
    if status == LIVE:
        return and_(
            or_(Product.auction_status == LIVE,
                and_(Product.auction_status == SCHEDULED, started)),
            Product.end_time > now,
        )
    if status == ENDED:
        return or_(
            Product.auction_status == ENDED,
            and_(Product.auction_status == LIVE, over),
            and_(Product.auction_status == SCHEDULED, started, over),
        )
    return Product.auction_status == status


def reserve_met(amount, reserve_price):
    return reserve_price is None or (amount is not None and amount >= reserve_price)


class AuctionLifecycle:
    def __init__(self, session, publisher):
        self.session = session
        self.publisher = publisher

    def refresh(self, product, now=None):
        """Aplica la transición que toque por tiempo, si la hay."""
        now = now or utcnow()
        target = due_status(product.auction_status, product.start_time, product.end_time, now)
        if target != product.auction_status:
            self._transition(product, target, now)
        return product

    def sweep(self, now=None):
        now = now or utcnow()
        due = self.session.execute(
            select(Product).where(or_(
                and_(Product.auction_status == SCHEDULED, Product.start_time <= now),
                and_(Product.auction_status == LIVE, Product.end_time <= now),
            ))
        ).scalars().all()
        changed = 0
        for product in due:
            before = product.auction_status
            self.refresh(product, now)
            if product.auction_status != before:
                changed += 1
        return changed

    def cancel(self, product_id, actor, now=None):
        if actor.role not in ADMIN_ROLES:
            raise Forbidden("Solo administradores pueden cancelar subastas.")
        product = self.session.get(Product, product_id)
        if product is None:
            raise NotFound("Subasta no encontrada.")
        now = now or utcnow()
        self.refresh(product, now)
        if product.auction_status == LIVE or product.auction_status == SCHEDULED:
            self._transition(product, CANCELLED, now, message="Subasta cancelada por un administrador")
        if product.auction_status == ENDED:
            raise AuctionNotActive("La subasta ya terminó; no se puede cancelar.", status=ENDED)
        # CANCELLED: re-aplicar no hace nada
        return product

    def _transition(self, product, target, now, message=None):
        observed = product.auction_status
        leader_uid = None
        if product.leading_bid_id is not None:
            leader_uid = self.session.scalar(select(Bid.user_id).where(Bid.id == product.leading_bid_id))
        values = {"auction_status": target}
        if target in TERMINAL_STATUSES:
            values["ended_at"] = now
        sold = False
        if target == ENDED:
            values["winner_bid_id"] = product.leading_bid_id
            if leader_uid is not None and reserve_met(product.current_bid, product.reserve_price):
                values["status"] = LISTING_SOLD
                sold = True

        result = self.session.execute(
            update(Product)
            .where(Product.id == product.id, Product.auction_status == observed)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Otro proceso ya movió el estado; nos quedamos con lo que haya
            self.session.rollback()
            self.session.refresh(product)
            log.info("lifecycle: subasta %s ya no estaba en %s", product.id, observed)
            return False

        if sold:
            notify(self.session, leader_uid, "auction_won", "Ganaste una subasta",
                   f"Ganaste {product.title} por ${product.current_bid:,.2f}",
                   product_id=product.id, amount=float(product.current_bid))
        elif target == CANCELLED and leader_uid is not None:
            notify(self.session, leader_uid, "auction_cancelled", "Subasta cancelada",
                   f"La subasta de {product.title} fue cancelada",
                   product_id=product.id)
        self.session.commit()
        self.session.refresh(product)

        log.info("lifecycle: subasta %s %s -> %s", product.id, observed, target)
        try:
            self.publisher.publish(product.id, events.auction_status(product, message))
        except Exception:
            log.exception("lifecycle: fallo publicando el estado de la subasta %s", product.id)
        return True
