"""Libro de pujas.

``place_bid`` valida contra una foto del producto y escribe con un update
condicional sobre la puja líder observada: si otra puja ganó la carrera el
update no toca filas, se revierte todo (incluida la fila de la puja) y se
vuelve a leer y validar con el nuevo mínimo. No hay locks en proceso; la
base es el único punto de serialización.
"""
import logging
from collections import namedtuple
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import object_session

from ..errors import (
    AuctionNotActive, BidTooLow, Conflict, ForbiddenSelfBid, InternalError, NotFound, Unauthorized,
)
from ..live import events
from ..models import (
    Bid, Product, User, LIVE, ENDED, BID_ACCEPTED, BID_OUTBID, LISTING_APPROVED, LISTING_SOLD, utcnow,
)
from ..utils import CENT, money
from .lifecycle import AuctionLifecycle, reserve_met
from .notifications import notify

log = logging.getLogger("auctionhouse.bids")

BidReceipt = namedtuple("BidReceipt", "bid current_bid minimum_next auction_status")


@dataclass(frozen=True)
class AuctionSnapshot:
    id: int
    agent_id: int
    title: str
    auction_status: str
    start_time: datetime
    end_time: datetime
    current_bid: Optional[Decimal]
    starting_bid: Optional[Decimal]
    bid_increment: Optional[Decimal]
    reserve_price: Optional[Decimal]
    buy_now_price: Optional[Decimal]
    bid_count: int
    leading_bid_id: Optional[int]
    leading_user_id: Optional[int]

    @classmethod
    def of(cls, product):
        leader_uid = None
        if product.leading_bid_id is not None:
            leader_uid = object_session(product).scalar(
                select(Bid.user_id).where(Bid.id == product.leading_bid_id))
        return cls(
            id=product.id,
            agent_id=product.agent_id,
            title=product.title,
            auction_status=product.auction_status,
            start_time=product.start_time,
            end_time=product.end_time,
            current_bid=product.current_bid,
            starting_bid=product.starting_bid,
            bid_increment=product.bid_increment,
            reserve_price=product.reserve_price,
            buy_now_price=product.buy_now_price,
            bid_count=product.bid_count or 0,
            leading_bid_id=product.leading_bid_id,
            leading_user_id=leader_uid,
        )


def minimum_bid(snapshot, increment_default=5):
    """max(puja actual + incremento, puja inicial); sin pujas cuenta como 0."""
    increment = snapshot.bid_increment
    if increment is None or increment <= 0:
        increment = Decimal(increment_default)
    current = snapshot.current_bid or Decimal("0")
    floor = snapshot.starting_bid or Decimal("0")
    return max(current + increment, floor).quantize(CENT)


class BidLedger:
    def __init__(self, session, publisher, increment_default=5, max_attempts=2, lifecycle=None):
        self.session = session
        self.publisher = publisher
        self.increment_default = increment_default
        self.max_attempts = max(1, max_attempts)
        self.lifecycle = lifecycle or AuctionLifecycle(session, publisher)

    def place_bid(self, auction_id, user_id, amount, now=None):
        for attempt in range(1, self.max_attempts + 1):
            at = now or utcnow()
            snapshot, bidder = self._validate(auction_id, user_id, amount, at)
            bid = self._try_commit(snapshot, bidder, amount, at)
            if bid is not None:
                return self._announce(snapshot, bidder, bid, amount)
            log.info("bids: conflicto en subasta %s (intento %d/%d)", auction_id, attempt, self.max_attempts)
        raise Conflict("Otra puja se registró al mismo tiempo; vuelve a intentarlo.")

    def _validate(self, auction_id, user_id, amount, now):
        product = self.session.get(Product, auction_id, populate_existing=True)
        if product is None:
            raise NotFound("Subasta no encontrada.")
        self.lifecycle.refresh(product, now)
        if product.auction_status != LIVE or not (product.start_time <= now < product.end_time):
            raise AuctionNotActive(status=product.auction_status)
        if product.status != LISTING_APPROVED:
            raise AuctionNotActive("La subasta no está aprobada.", status=product.auction_status,
                                   listingStatus=product.status)

        bidder = self.session.get(User, user_id) if user_id is not None else None
        if bidder is None or not bidder.is_active:
            raise Unauthorized("Debes iniciar sesión para pujar.")
        if product.agent_id == bidder.id:
            raise ForbiddenSelfBid()

        snapshot = AuctionSnapshot.of(product)
        minimum = minimum_bid(snapshot, self.increment_default)
        if amount < minimum:
            raise BidTooLow(
                f"La oferta mínima es ${minimum:,.2f}.",
                minimumBid=money(minimum),
                currentBid=money(snapshot.current_bid),
            )
        return snapshot, bidder

    def _try_commit(self, snapshot, bidder, amount, now):
        """Una transacción: inserta la puja y mueve la líder, o nada."""
        buy_now = snapshot.buy_now_price is not None and amount >= snapshot.buy_now_price
        try:
            bid = Bid(product_id=snapshot.id, user_id=bidder.id, amount=amount,
                      status=BID_ACCEPTED, created_at=now, updated_at=now)
            self.session.add(bid)
            self.session.flush()

            values = {
                "current_bid": amount,
                "leading_bid_id": bid.id,
                "bid_count": Product.bid_count + 1,
                "last_bid_at": now,
            }
            if buy_now:
                values.update(auction_status=ENDED, ended_at=now, winner_bid_id=bid.id)
                if reserve_met(amount, snapshot.reserve_price):
                    values["status"] = LISTING_SOLD
            if snapshot.leading_bid_id is None:
                same_leader = Product.leading_bid_id.is_(None)
            else:
                same_leader = Product.leading_bid_id == snapshot.leading_bid_id

            result = self.session.execute(
                update(Product)
                .where(
                    Product.id == snapshot.id,
                    same_leader,
                    Product.status == LISTING_APPROVED,
                    Product.auction_status == LIVE,
                    Product.start_time <= now,
                    Product.end_time > now,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.session.rollback()
                return None

            if snapshot.leading_bid_id is not None:
                self.session.execute(
                    update(Bid)
                    .where(Bid.id == snapshot.leading_bid_id)
                    .values(status=BID_OUTBID)
                    .execution_options(synchronize_session=False)
                )
                if snapshot.leading_user_id != bidder.id:
                    notify(self.session, snapshot.leading_user_id, "outbid", "Tu oferta fue superada",
                           f"Superaron tu oferta en {snapshot.title}: ${amount:,.2f}",
                           product_id=snapshot.id, amount=float(amount))
            if values.get("status") == LISTING_SOLD:
                notify(self.session, bidder.id, "auction_won", "Ganaste una subasta",
                       f"Compraste {snapshot.title} por ${amount:,.2f}",
                       product_id=snapshot.id, amount=float(amount))
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            log.exception("bids: error de base registrando puja en subasta %s", snapshot.id)
            raise InternalError("No se pudo registrar la puja.")
        return bid

    def _announce(self, snapshot, bidder, bid, amount):
        product = self.session.get(Product, snapshot.id, populate_existing=True)
        minimum_next = minimum_bid(AuctionSnapshot.of(product), self.increment_default)
        log.info("bids: subasta=%s puja=%s monto=%s usuario=%s", snapshot.id, bid.id, amount, bidder.id)

        self._publish(snapshot.id, events.bid_update(
            snapshot.id, bid, bidder.name, product.current_bid, product.bid_count, minimum_next))
        if product.auction_status == ENDED:
            self._publish(snapshot.id, events.auction_status(product, "Subasta cerrada por compra inmediata"))
        return BidReceipt(bid, product.current_bid, minimum_next, product.auction_status)

    def _publish(self, auction_id, event):
        try:
            self.publisher.publish(auction_id, event)
        except Exception:
            log.exception("bids: fallo publicando %s de la subasta %s", event["type"], auction_id)

    def history(self, auction_id):
        product = self.session.get(Product, auction_id)
        if product is None:
            raise NotFound("Subasta no encontrada.")
        rows = self.session.execute(
            select(Bid, User)
            .join(User, User.id == Bid.user_id)
            .where(Bid.product_id == auction_id)
            .order_by(Bid.amount.desc(), Bid.created_at.asc(), Bid.id.asc())
        ).all()
        return product, rows
