import math
from collections import namedtuple

from sqlalchemy import select, func, or_

from ..errors import ValidationFailed
from ..models import (
    Category, Product, SCHEDULED, LIVE, LISTING_APPROVED, LISTING_STATUSES, AUCTION_STATUSES, utcnow,
)
from .lifecycle import status_clause

SORTS = ("ending_soon", "newest", "oldest", "price_asc", "price_desc")
MAX_LIMIT = 100

Page = namedtuple("Page", "items meta")


def parse_values(raw, allowed, field):
    """'LIVE' | 'LIVE,SCHEDULED' | ['LIVE', ...] -> lista validada (o None)."""
    if raw is None or raw == "" or raw == []:
        return None
    items = raw if isinstance(raw, (list, tuple, set)) else str(raw).split(",")
    values = [str(v).strip().upper() for v in items if str(v).strip()]
    bad = [v for v in values if v not in allowed]
    if bad:
        raise ValidationFailed(f"Valor inválido para {field}: {', '.join(bad)}.", field=field)
    return values or None


def parse_page(page, limit):
    try:
        page = int(page or 1)
        limit = int(limit or 20)
    except (TypeError, ValueError):
        raise ValidationFailed("page y limit deben ser enteros.")
    if page < 1 or limit < 1:
        raise ValidationFailed("page y limit deben ser positivos.")
    return page, min(limit, MAX_LIMIT)


def list_auctions(session, filters=None, sort="newest", page=1, limit=20, now=None):
    """Página de subastas filtrada.

    Sin filtro de estado se aplica la vista activa: listados APPROVED cuya
    subasta sigue SCHEDULED o LIVE. SOLD, ENDED y CANCELLED quedan fuera por
    construcción de la consulta.
    """
    now = now or utcnow()
    filters = filters or {}
    sort = sort or "newest"
    if sort not in SORTS:
        raise ValidationFailed(f"sort debe ser uno de: {', '.join(SORTS)}.", field="sort")
    page, limit = parse_page(page, limit)

    statuses = parse_values(filters.get("status"), LISTING_STATUSES, "status")
    auction_statuses = parse_values(filters.get("auctionStatus"), AUCTION_STATUSES, "auctionStatus")
    active = filters.get("active")
    if active is None:
        active = statuses is None and auction_statuses is None

    stmt = select(Product)
    if active:
        stmt = stmt.where(
            Product.status == LISTING_APPROVED,
            or_(status_clause(SCHEDULED, now), status_clause(LIVE, now)),
        )
    if statuses:
        stmt = stmt.where(Product.status.in_(statuses))
    if auction_statuses:
        stmt = stmt.where(or_(*[status_clause(s, now) for s in auction_statuses]))

    category = filters.get("category")
    if category:
        if str(category).isdigit():
            stmt = stmt.where(Product.category_id == int(category))
        else:
            stmt = stmt.join(Category, Category.id == Product.category_id).where(Category.slug == category)
    if filters.get("agentId"):
        stmt = stmt.where(Product.agent_id == filters["agentId"])
    text_q = filters.get("q")
    if text_q:
        like = f"%{text_q}%"
        stmt = stmt.where(or_(Product.title.ilike(like), Product.description.ilike(like)))

    price = func.coalesce(Product.current_bid, Product.starting_bid, 0)
    if sort == "ending_soon":
        stmt = stmt.where(status_clause(LIVE, now), Product.end_time >= now)
        order = (Product.end_time.asc(), Product.created_at.desc(), Product.id.desc())
    elif sort == "oldest":
        order = (Product.created_at.asc(), Product.id.asc())
    elif sort == "price_asc":
        order = (price.asc(), Product.id.asc())
    elif sort == "price_desc":
        order = (price.desc(), Product.id.desc())
    else:
        order = (Product.created_at.desc(), Product.id.desc())

    total = session.scalar(select(func.count()).select_from(stmt.subquery()))
    items = session.execute(
        stmt.order_by(*order).limit(limit).offset((page - 1) * limit)
    ).scalars().all()

    pages = math.ceil(total / limit) if total else 0
    meta = {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": pages,
        "hasNextPage": page < pages,
        "hasPreviousPage": page > 1,
    }
    return Page(items, meta)
