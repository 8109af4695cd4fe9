# tests/test_ledger.py
import warnings
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import update
from sqlalchemy.exc import SAWarning

from auctionhouse.errors import AuctionNotActive, BidTooLow, Conflict
from auctionhouse.extensions import db
from auctionhouse.models import Bid, Product, User, BID_ACCEPTED, LISTING_PENDING, utcnow
from auctionhouse.services import AuctionLifecycle, BidLedger, minimum_bid


@pytest.fixture()
def ledger(app_ctx, publisher):
    return BidLedger(db.session, publisher, increment_default=5, max_attempts=2)


def _snap(current=None, starting=None, increment=None):
    return SimpleNamespace(current_bid=current, starting_bid=starting, bid_increment=increment)


@pytest.mark.parametrize("snap, expected", [
    (_snap(starting=Decimal("100"), increment=Decimal("10")), Decimal("100")),
    (_snap(current=Decimal("100"), starting=Decimal("100"), increment=Decimal("10")), Decimal("110")),
    (_snap(current=Decimal("100"), increment=None), Decimal("105")),
    (_snap(current=Decimal("100"), increment=Decimal("0")), Decimal("105")),
    (_snap(), Decimal("5")),
    (_snap(current=Decimal("99.50"), increment=Decimal("0.25")), Decimal("99.75")),
])
def test_minimum_bid(snap, expected):
    assert minimum_bid(snap, 5) == expected


def test_stale_snapshot_loses_the_race(ledger, make_auction, make_user):
    aid = make_auction(starting_bid="100", bid_increment="10")
    alice, bob, carol = make_user(), make_user(), make_user()
    ledger.place_bid(aid, alice, Decimal("100"))

    now = utcnow()
    snapshot, bidder = ledger._validate(aid, bob, Decimal("110"), now)
    # carol gana la carrera entre la validación y la escritura de bob
    ledger.place_bid(aid, carol, Decimal("120"))

    assert ledger._try_commit(snapshot, bidder, Decimal("110"), now) is None
    amounts = sorted(b.amount for b in db.session.query(Bid).filter_by(product_id=aid))
    assert amounts == [Decimal("100"), Decimal("120")]
    p = db.session.get(Product, aid)
    assert p.current_bid == Decimal("120")
    assert p.bid_count == 2


def test_retry_after_lost_race(ledger, make_auction, make_user, monkeypatch):
    aid = make_auction()
    bob = make_user()
    real = ledger._try_commit
    calls = []

    def flaky(*args):
        calls.append(args)
        return None if len(calls) == 1 else real(*args)

    monkeypatch.setattr(ledger, "_try_commit", flaky)
    receipt = ledger.place_bid(aid, bob, Decimal("100"))
    assert len(calls) == 2
    assert receipt.current_bid == Decimal("100")
    assert receipt.minimum_next == Decimal("110")


def test_conflict_after_max_attempts(ledger, make_auction, make_user, monkeypatch):
    aid = make_auction()
    bob = make_user()
    monkeypatch.setattr(ledger, "_try_commit", lambda *args: None)

    with pytest.raises(Conflict):
        ledger.place_bid(aid, bob, Decimal("100"))
    assert db.session.query(Bid).filter_by(product_id=aid).count() == 0


def test_retry_revalidates_against_new_minimum(ledger, make_auction, make_user, publisher, monkeypatch):
    aid = make_auction(starting_bid="100", bid_increment="10")
    bob, carol = make_user(), make_user()
    rival = BidLedger(db.session, publisher)

    def lose(*args):
        rival.place_bid(aid, carol, Decimal("200"))
        return None

    monkeypatch.setattr(ledger, "_try_commit", lose)
    with pytest.raises(BidTooLow) as exc:
        ledger.place_bid(aid, bob, Decimal("110"))
    assert exc.value.extra["minimumBid"] == 210
    assert exc.value.extra["currentBid"] == 200


def test_cancel_between_validation_and_write(ledger, make_auction, make_user, publisher, monkeypatch):
    aid = make_auction()
    bob, admin_id = make_user(), make_user("ADMIN")

    def cancelled(*args):
        AuctionLifecycle(db.session, publisher).cancel(aid, db.session.get(User, admin_id))
        return None

    monkeypatch.setattr(ledger, "_try_commit", cancelled)
    with pytest.raises(AuctionNotActive) as exc:
        ledger.place_bid(aid, bob, Decimal("100"))
    assert exc.value.extra["status"] == "CANCELLED"
    assert db.session.query(Bid).filter_by(product_id=aid).count() == 0


def test_single_accepted_bid_is_the_leader(ledger, make_auction, make_user):
    aid = make_auction(starting_bid="10", bid_increment="1")
    users = [make_user() for _ in range(3)]
    for i, amount in enumerate(("10", "11", "15", "20", "21")):
        ledger.place_bid(aid, users[i % 3], Decimal(amount))

    accepted = db.session.query(Bid).filter_by(product_id=aid, status=BID_ACCEPTED).all()
    p = db.session.get(Product, aid)
    assert len(accepted) == 1
    assert accepted[0].id == p.leading_bid_id
    assert p.current_bid == Decimal("21") == accepted[0].amount
    assert p.bid_count == 5


def test_publish_failure_does_not_undo_bid(ledger, make_auction, make_user):
    class Broken:
        def publish(self, auction_id, event):
            raise RuntimeError("broadcaster caído")

    ledger.publisher = Broken()
    ledger.lifecycle.publisher = ledger.publisher
    aid = make_auction()
    receipt = ledger.place_bid(aid, make_user(), Decimal("100"))
    assert receipt.bid.id is not None
    assert db.session.get(Product, aid).leading_bid_id == receipt.bid.id


def test_write_requires_approved_listing(ledger, make_auction, make_user):
    aid = make_auction()
    bob = make_user()
    now = utcnow()
    snapshot, bidder = ledger._validate(aid, bob, Decimal("100"), now)
    # el listado vuelve a revisión entre la validación y la escritura
    db.session.execute(update(Product).where(Product.id == aid).values(status=LISTING_PENDING))
    db.session.commit()

    assert ledger._try_commit(snapshot, bidder, Decimal("100"), now) is None
    assert db.session.query(Bid).filter_by(product_id=aid).count() == 0
    with pytest.raises(AuctionNotActive):
        ledger.place_bid(aid, bob, Decimal("100"))


def test_schema_drops_without_cycle_warnings(app_ctx):
    with warnings.catch_warnings():
        warnings.simplefilter("error", SAWarning)
        db.drop_all()
        db.create_all()
