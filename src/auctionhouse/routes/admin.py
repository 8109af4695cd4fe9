from flask import Blueprint, current_app
from .. import deps
from ..errors import NotFound, Conflict
from ..extensions import db
from ..models import Product, ADMIN_ROLES, LISTING_PENDING, LISTING_APPROVED
from ..security import current_user, roles_required
from ..utils import api_ok

bp = Blueprint("admin", __name__)


@bp.post("/auctions/<int:auction_id>/cancel")
@roles_required(*ADMIN_ROLES)
def cancel_auction(auction_id):
    admin = current_user()
    p = deps.lifecycle().cancel(auction_id, admin)
    current_app.logger.info("admin:cancel auction=%s by=%s status=%s", auction_id, admin.id, p.auction_status)
    return api_ok({"id": p.id, "auctionStatus": p.auction_status, "status": p.status})


@bp.post("/auctions/<int:auction_id>/approve")
@roles_required(*ADMIN_ROLES)
def approve_auction(auction_id):
    p = db.session.get(Product, auction_id)
    if p is None:
        raise NotFound("Subasta no encontrada.")
    if p.status == LISTING_APPROVED:
        return api_ok({"id": p.id, "status": p.status})
    if p.status != LISTING_PENDING:
        raise Conflict(f"No se puede aprobar un listado en estado {p.status}.")
    p.status = LISTING_APPROVED
    db.session.commit()
    return api_ok({"id": p.id, "status": p.status})
