# tests/test_bids.py
from datetime import timedelta

from auctionhouse.extensions import db
from auctionhouse.models import Bid, Notification, Product, utcnow


def _bid(client, auction_id, amount, headers=None):
    return client.post(f"/api/auctions/{auction_id}/bids", json={"amount": amount}, headers=headers or {})


def test_minimum_increment_flow(client, app_instance, make_user, make_auction, headers_for, publisher):
    # startingBid=100, bidIncrement=10, sin pujas
    aid = make_auction(starting_bid="100", bid_increment="10")
    alice, bob = make_user(name="Alice"), make_user(name="Bob")

    r = _bid(client, aid, 100, headers_for(alice))
    assert r.status_code == 200
    body = r.get_json()
    assert body["data"]["amount"] == 100
    assert body["currentBid"] == 100
    assert body["minimumBid"] == 110

    r = _bid(client, aid, 105, headers_for(bob))
    assert r.status_code == 400
    err = r.get_json()["error"]
    assert err["code"] == "BidTooLow"
    assert err["minimumBid"] == 110

    r = _bid(client, aid, 110, headers_for(bob))
    assert r.status_code == 200

    r = client.get(f"/api/auctions/{aid}/bids")
    history = r.get_json()["data"]
    assert [b["amount"] for b in history] == [110, 100]
    assert [b["status"] for b in history] == ["accepted", "outbid"]
    assert [b["isWinning"] for b in history] == [True, False]
    assert history[0]["bidder"]["name"] == "Bob"
    assert r.get_json()["currentBid"] == 110

    with app_instance.app_context():
        notes = db.session.query(Notification).filter_by(user_id=alice).all()
        assert [n.type for n in notes] == ["outbid"]
        # el 105 rechazado no dejó rastro
        assert db.session.query(Bid).filter_by(product_id=aid).count() == 2

    assert publisher.types(aid) == ["bid_update", "bid_update"]
    last = publisher.events[-1][1]
    assert last["currentBid"] == 110
    assert last["bid"]["bidderName"] == "Bob"


def test_buy_now_ends_auction(client, app_instance, make_user, make_auction, headers_for, publisher):
    aid = make_auction(starting_bid="100", bid_increment="10", buy_now_price="500")
    buyer, late = make_user(), make_user()

    r = _bid(client, aid, 500, headers_for(buyer))
    assert r.status_code == 200
    assert r.get_json()["auctionStatus"] == "ENDED"

    r = _bid(client, aid, 600, headers_for(late))
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "AuctionNotActive"

    with app_instance.app_context():
        p = db.session.get(Product, aid)
        assert p.auction_status == "ENDED"
        assert p.status == "SOLD"
        assert p.winner_bid_id == p.leading_bid_id
        won = db.session.query(Notification).filter_by(user_id=buyer, type="auction_won").count()
        assert won == 1

    assert publisher.types(aid) == ["bid_update", "auction_status"]
    assert publisher.events[-1][1]["status"] == "ENDED"


def test_seller_cannot_bid_on_own_auction(client, make_user, make_auction, headers_for):
    agent = make_user("AGENT")
    aid = make_auction(agent_id=agent)
    r = _bid(client, aid, 100, headers_for(agent))
    assert r.status_code == 403
    assert r.get_json()["error"]["code"] == "ForbiddenSelfBid"


def test_anonymous_bid_is_unauthorized(client, make_auction):
    aid = make_auction()
    r = _bid(client, aid, 100)
    assert r.status_code == 401
    assert r.get_json()["error"]["code"] == "Unauthorized"


def test_auction_state_is_checked_before_auth(client, make_auction):
    now = utcnow()
    aid = make_auction(auction_status="CANCELLED", end_time=now + timedelta(hours=1))
    r = _bid(client, aid, 100)
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "AuctionNotActive"


def test_unknown_auction(client, make_user, headers_for):
    r = _bid(client, 9999, 100, headers_for(make_user()))
    assert r.status_code == 404
    assert r.get_json()["error"]["code"] == "NotFound"


def test_malformed_amounts(client, make_user, make_auction, headers_for):
    aid = make_auction()
    h = headers_for(make_user())
    for bad in (None, "abc", -5, 0, True, "10.001"):
        r = _bid(client, aid, bad, h)
        assert r.status_code == 400, bad
        assert r.get_json()["error"]["code"] == "ValidationFailed"


def test_scheduled_auction_rejects_until_start(client, make_user, make_auction, headers_for):
    now = utcnow()
    future = make_auction(auction_status="SCHEDULED", start_time=now + timedelta(hours=1),
                          end_time=now + timedelta(hours=2))
    r = _bid(client, future, 100, headers_for(make_user()))
    assert r.status_code == 409
    assert r.get_json()["error"]["status"] == "SCHEDULED"

    # ya empezó pero nadie la pasó a LIVE: se abre al leerla
    started = make_auction(auction_status="SCHEDULED", start_time=now - timedelta(minutes=1))
    r = _bid(client, started, 100, headers_for(make_user()))
    assert r.status_code == 200
    assert r.get_json()["auctionStatus"] == "LIVE"


def test_expired_live_auction_is_closed_lazily(client, app_instance, make_user, make_auction, headers_for, publisher):
    now = utcnow()
    aid = make_auction(start_time=now - timedelta(hours=2), end_time=now - timedelta(seconds=1))
    r = _bid(client, aid, 100, headers_for(make_user()))
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "AuctionNotActive"
    with app_instance.app_context():
        assert db.session.get(Product, aid).auction_status == "ENDED"
    assert publisher.types(aid) == ["auction_status"]


def test_terminal_auctions_reject_every_later_bid(client, make_user, make_auction, headers_for):
    h = headers_for(make_user())
    for status in ("ENDED", "CANCELLED"):
        aid = make_auction(auction_status=status)
        for amount in (100, 1000, 100000):
            r = _bid(client, aid, amount, h)
            assert r.status_code == 409
            assert r.get_json()["error"]["code"] == "AuctionNotActive"


def test_history_order_and_current_bid(client, make_user, make_auction, headers_for):
    aid = make_auction(starting_bid="10", bid_increment="1")
    users = [make_user() for _ in range(4)]
    for uid, amount in zip(users, (10, 15, 16, 40)):
        assert _bid(client, aid, amount, headers_for(uid)).status_code == 200
    assert _bid(client, aid, 40, headers_for(users[0])).status_code == 400

    r = client.get(f"/api/auctions/{aid}/bids")
    body = r.get_json()
    amounts = [b["amount"] for b in body["data"]]
    assert amounts == sorted(amounts, reverse=True)
    assert amounts[0] == body["currentBid"] == body["highestBid"] == 40
    assert sum(b["isWinning"] for b in body["data"]) == 1
    assert [b["status"] for b in body["data"]].count("accepted") == 1

    detail = client.get(f"/api/auctions/{aid}").get_json()["data"]
    assert detail["currentBid"] == 40
    assert detail["bidCount"] == 4
    assert detail["minimumBid"] == 41


def test_my_bids(client, make_user, make_auction, headers_for):
    aid = make_auction()
    uid = make_user()
    _bid(client, aid, 100, headers_for(uid))
    r = client.get("/api/users/me/bids", headers=headers_for(uid))
    data = r.get_json()["data"]
    assert len(data) == 1
    assert data[0]["leading"] is True
    assert data[0]["amount"] == 100


def test_not_active_error_reports_auction_status(client, make_user, make_auction, headers_for):
    aid = make_auction(auction_status="ENDED")
    r = _bid(client, aid, 100, headers_for(make_user()))
    assert r.status_code == 409
    err = r.get_json()["error"]
    assert err["code"] == "AuctionNotActive"
    assert err["status"] == "ENDED"
    assert err["message"]


def test_unapproved_listing_rejects_bids(client, app_instance, make_user, make_auction, headers_for):
    aid = make_auction(status="PENDING_APPROVAL")
    bidder, admin = make_user(), make_user("ADMIN")

    r = _bid(client, aid, 100, headers_for(bidder))
    assert r.status_code == 409
    err = r.get_json()["error"]
    assert err["code"] == "AuctionNotActive"
    assert err["listingStatus"] == "PENDING_APPROVAL"
    with app_instance.app_context():
        assert db.session.query(Bid).filter_by(product_id=aid).count() == 0

    assert client.post(f"/api/admin/auctions/{aid}/approve", headers=headers_for(admin)).status_code == 200
    assert _bid(client, aid, 100, headers_for(bidder)).status_code == 200
