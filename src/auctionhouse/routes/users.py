# auctionhouse/routes/users.py
from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from sqlalchemy import select
from ..extensions import db
from ..models import Bid, Product
from ..security import current_user_id
from ..services import notifications as notes
from ..utils import api_ok, iso, money

bp = Blueprint("users", __name__)


@bp.get("/users/me/bids")
@jwt_required()
def my_bids():
    uid = current_user_id()
    rows = db.session.execute(
        select(Bid, Product)
        .join(Product, Product.id == Bid.product_id)
        .where(Bid.user_id == uid)
        .order_by(Bid.created_at.desc(), Bid.id.desc())
    ).all()
    data = []
    for b, p in rows:
        data.append({
            "bidId": b.id,
            "productId": p.id,
            "title": p.title,
            "amount": money(b.amount),
            "status": b.status,
            "currentBid": money(p.current_bid),
            "leading": p.leading_bid_id == b.id,
            "won": p.winner_bid_id == b.id,
            "auctionStatus": p.auction_status,
            "bidAt": iso(b.created_at),
        })
    return api_ok(data)


def serialize_notification(n):
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "payload": n.payload or {},
        "isRead": n.is_read,
        "createdAt": iso(n.created_at),
        "readAt": iso(n.read_at),
    }


@bp.get("/notifications")
@jwt_required()
def my_notifications():
    unread_only = request.args.get("unread") in ("1", "true")
    items, unread = notes.list_for_user(db.session, current_user_id(), unread_only=unread_only)
    return api_ok([serialize_notification(n) for n in items], unreadCount=unread)


@bp.patch("/notifications/<int:notification_id>")
@jwt_required()
def mark_notification_read(notification_id):
    n = notes.mark_read(db.session, current_user_id(), notification_id)
    return api_ok(serialize_notification(n))


@bp.delete("/notifications/<int:notification_id>")
@jwt_required()
def delete_notification(notification_id):
    notes.delete(db.session, current_user_id(), notification_id)
    return api_ok({"deleted": True})


@bp.post("/notifications/mark-all-read")
@jwt_required()
def mark_notifications_read():
    updated = notes.mark_all_read(db.session, current_user_id())
    return api_ok({"updated": updated})
