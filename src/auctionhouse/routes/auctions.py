from datetime import datetime, timezone
from flask import Blueprint, request, current_app
from sqlalchemy import select, text
from flask_jwt_extended import jwt_required
from .. import deps
from ..errors import ValidationFailed, NotFound
from ..extensions import db
from ..models import (
    Category, Product, SELLER_ROLES, ADMIN_ROLES, LISTING_APPROVED, LISTING_PENDING, SCHEDULED, LIVE, utcnow,
)
from ..security import current_user, current_user_id, roles_required
from ..services import list_auctions, minimum_bid, due_status
from ..services.bids import AuctionSnapshot
from ..utils import api_ok, iso, money, parse_money

bp = Blueprint("auctions", __name__)


def _parse_dt(value, field):
    if not value:
        raise ValidationFailed(f"Falta el campo {field}.", field=field)
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationFailed(f"{field} debe ser una fecha ISO-8601.", field=field)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _flag(value):
    if value is None:
        return None
    return str(value).lower() not in ("0", "false", "no", "all")


@bp.get("/categories")
def list_categories():
    items = db.session.execute(select(Category).order_by(Category.name.asc())).scalars().all()
    return api_ok([{"id": c.id, "name": c.name, "slug": c.slug} for c in items])


@bp.get("/auctions")
def list_all():
    args = request.args
    filters = {
        "status": ",".join(args.getlist("status")),
        "auctionStatus": ",".join(args.getlist("auctionStatus")),
        "category": args.get("category"),
        "agentId": args.get("agentId", type=int),
        "q": args.get("q"),
        "active": _flag(args.get("active")),
    }
    now = utcnow()
    page = list_auctions(db.session, filters, sort=args.get("sort"),
                         page=args.get("page"), limit=args.get("limit"), now=now)
    return api_ok([serialize_auction_summary(p, now) for p in page.items],
                  meta={"pagination": page.meta})


@bp.post("/auctions")
@roles_required(*SELLER_ROLES)
def create_auction():
    user = current_user()
    data = request.get_json(silent=True) or {}

    title = (data.get("title") or "").strip()
    if not title or len(title) > 200:
        raise ValidationFailed("title es obligatorio (máx. 200 caracteres).", field="title")
    images = data.get("images") or []
    if not isinstance(images, list):
        raise ValidationFailed("images debe ser un arreglo de URLs.", field="images")

    start_time = _parse_dt(data.get("startTime") or iso(utcnow()), "startTime")
    end_time = _parse_dt(data.get("endTime"), "endTime")
    if end_time <= start_time:
        raise ValidationFailed("endTime debe ser posterior a startTime.", field="endTime")
    if end_time <= utcnow():
        raise ValidationFailed("endTime ya pasó.", field="endTime")

    starting_bid = parse_money(data.get("startingBid"), "startingBid", allow_none=True)
    bid_increment = parse_money(data.get("bidIncrement"), "bidIncrement", allow_none=True)
    reserve_price = parse_money(data.get("reservePrice"), "reservePrice", allow_none=True)
    buy_now_price = parse_money(data.get("buyNowPrice"), "buyNowPrice", allow_none=True)
    if buy_now_price is not None and starting_bid is not None and buy_now_price < starting_bid:
        raise ValidationFailed("buyNowPrice no puede ser menor que startingBid.", field="buyNowPrice")

    category_id = data.get("categoryId")
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise NotFound("Categoría no encontrada.")

    p = Product(
        agent_id=user.id,
        category_id=category_id,
        title=title,
        description=data.get("description"),
        images=images,
        status=LISTING_APPROVED if user.role in ADMIN_ROLES else LISTING_PENDING,
        auction_status=SCHEDULED,
        start_time=start_time,
        end_time=end_time,
        starting_bid=starting_bid,
        bid_increment=bid_increment,
        reserve_price=reserve_price,
        buy_now_price=buy_now_price,
    )
    db.session.add(p)
    db.session.commit()
    current_app.logger.info("auction:created id=%s agent=%s", p.id, user.id)
    return api_ok(serialize_auction_detail(p, utcnow()))


@bp.get("/auctions/<int:auction_id>")
def get_auction(auction_id):
    p = db.session.get(Product, auction_id)
    if p is None:
        raise NotFound("Subasta no encontrada.")
    now = utcnow()
    deps.lifecycle().refresh(p, now)
    return api_ok(serialize_auction_detail(p, now))


@bp.get("/auctions/<int:auction_id>/bids")
def list_bids(auction_id):
    product, rows = deps.ledger().history(auction_id)
    bids = [serialize_bid_entry(b, u, i == 0) for i, (b, u) in enumerate(rows)]
    return api_ok(bids, totalBids=len(bids), currentBid=money(product.current_bid),
                  highestBid=bids[0]["amount"] if bids else None)


@bp.post("/auctions/<int:auction_id>/bids")
@jwt_required(optional=True)
def place_bid(auction_id):
    # Que la puja falle limpio en vez de esperar locks indefinidamente
    if db.engine.dialect.name == "mysql":
        db.session.execute(text("SET SESSION innodb_lock_wait_timeout = :t"),
                           {"t": current_app.config["BID_LOCK_TIMEOUT_SECONDS"]})

    data = request.get_json(silent=True) or {}
    amount = parse_money(data.get("amount"))
    receipt = deps.ledger().place_bid(auction_id, current_user_id(), amount)
    return api_ok(
        serialize_bid(receipt.bid),
        currentBid=money(receipt.current_bid),
        minimumBid=money(receipt.minimum_next),
        auctionStatus=receipt.auction_status,
    )


def serialize_auction_summary(p: Product, now):
    return {
        "id": p.id,
        "title": p.title,
        "images": p.images or [],
        "categoryId": p.category_id,
        "status": p.status,
        "auctionStatus": due_status(p.auction_status, p.start_time, p.end_time, now),
        "startTime": iso(p.start_time),
        "endTime": iso(p.end_time),
        "startingBid": money(p.starting_bid),
        "currentBid": money(p.current_bid),
        "bidCount": p.bid_count or 0,
        "buyNowPrice": money(p.buy_now_price),
    }


def serialize_auction_detail(p: Product, now):
    data = serialize_auction_summary(p, now)
    increment = current_app.config["MIN_INCREMENT_DEFAULT"]
    data.update({
        "description": p.description,
        "agentId": p.agent_id,
        "bidIncrement": money(p.bid_increment),
        "reservePrice": money(p.reserve_price),
        "reserveMet": p.reserve_price is None or (p.current_bid is not None and p.current_bid >= p.reserve_price),
        "minimumBid": money(minimum_bid(AuctionSnapshot.of(p), increment)) if data["auctionStatus"] in (SCHEDULED, LIVE) else None,
        "winnerBidId": p.winner_bid_id,
        "endedAt": iso(p.ended_at),
        "createdAt": iso(p.created_at),
    })
    return data


def serialize_bid(b):
    return {
        "id": b.id,
        "productId": b.product_id,
        "userId": b.user_id,
        "amount": money(b.amount),
        "status": b.status,
        "createdAt": iso(b.created_at),
    }


def serialize_bid_entry(b, u, winning):
    return {
        "id": b.id,
        "amount": money(b.amount),
        "bidder": {"id": u.id, "name": u.name},
        "timestamp": iso(b.created_at),
        "status": b.status,
        "isWinning": winning,
    }
