from datetime import datetime, timezone
from .extensions import db, bcrypt


def utcnow():
    """UTC naive, igual que lo guarda la base."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


Money = db.Numeric(12, 2)

# Roles
ROLE_USER = "USER"
ROLE_AGENT = "AGENT"
ROLE_ADMIN = "ADMIN"
ROLE_SUPER_ADMIN = "SUPER_ADMIN"
ADMIN_ROLES = (ROLE_ADMIN, ROLE_SUPER_ADMIN)
SELLER_ROLES = (ROLE_AGENT, ROLE_ADMIN, ROLE_SUPER_ADMIN)

# Estado del listado (publicación), distinto del ciclo de la subasta
LISTING_DRAFT = "DRAFT"
LISTING_PENDING = "PENDING_APPROVAL"
LISTING_APPROVED = "APPROVED"
LISTING_REJECTED = "REJECTED"
LISTING_SOLD = "SOLD"
LISTING_STATUSES = (LISTING_DRAFT, LISTING_PENDING, LISTING_APPROVED, LISTING_REJECTED, LISTING_SOLD)

# Ciclo de la subasta
SCHEDULED = "SCHEDULED"
LIVE = "LIVE"
ENDED = "ENDED"
CANCELLED = "CANCELLED"
AUCTION_STATUSES = (SCHEDULED, LIVE, ENDED, CANCELLED)
TERMINAL_STATUSES = (ENDED, CANCELLED)

BID_ACCEPTED = "accepted"
BID_OUTBID = "outbid"


class TimestampMixin:
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class User(db.Model, TimestampMixin):
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(180), unique=True, index=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=ROLE_USER)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Saldos: los mantiene otro ledger, aquí solo se leen
    balance_real = db.Column(Money, nullable=False, default=0)
    balance_virtual = db.Column(Money, nullable=False, default=0)
    balance_usd = db.Column(Money, nullable=False, default=0)

    bids = db.relationship("Bid", back_populates="bidder", lazy="dynamic")

    def set_password(self, raw):
        self.password_hash = bcrypt.generate_password_hash(raw).decode()

    def check_password(self, raw):
        return bcrypt.check_password_hash(self.password_hash, raw)

    @property
    def is_admin(self):
        return self.role in ADMIN_ROLES


class Category(db.Model, TimestampMixin):
    __tablename__ = "categories"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(120), unique=True, index=True, nullable=False)


class Product(db.Model, TimestampMixin):
    """Un producto listado con campos de subasta."""

    __tablename__ = "products"
    id = db.Column(db.Integer, primary_key=True)
    agent_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    images = db.Column(db.JSON, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=LISTING_PENDING, index=True)
    auction_status = db.Column(db.String(20), nullable=False, default=SCHEDULED, index=True)
    start_time = db.Column(db.DateTime, nullable=False, default=utcnow)
    end_time = db.Column(db.DateTime, nullable=False, index=True)
    ended_at = db.Column(db.DateTime, nullable=True)

    starting_bid = db.Column(Money, nullable=True)
    bid_increment = db.Column(Money, nullable=True)
    reserve_price = db.Column(Money, nullable=True)
    buy_now_price = db.Column(Money, nullable=True)

    current_bid = db.Column(Money, nullable=True)
    bid_count = db.Column(db.Integer, nullable=False, default=0)
    last_bid_at = db.Column(db.DateTime, nullable=True)

    # Puja líder (clave del update condicional) y ganadora al cerrar
    leading_bid_id = db.Column(db.Integer, db.ForeignKey("bids.id", use_alter=True, name="fk_products_leading_bid_id"),
                               nullable=True)
    winner_bid_id = db.Column(db.Integer, db.ForeignKey("bids.id", use_alter=True, name="fk_products_winner_bid_id"),
                              nullable=True)

    agent = db.relationship("User", foreign_keys=[agent_id])
    category = db.relationship("Category")

    # *** CLAVE: especificar foreign_keys para desambiguar ***
    bids = db.relationship(
        "Bid",
        back_populates="product",
        lazy="dynamic",
        foreign_keys="Bid.product_id",
        order_by="Bid.amount.desc()",
    )
    leading_bid = db.relationship("Bid", foreign_keys=[leading_bid_id], uselist=False, post_update=True)
    winner_bid = db.relationship("Bid", foreign_keys=[winner_bid_id], uselist=False, post_update=True)


class Bid(db.Model, TimestampMixin):
    __tablename__ = "bids"
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    amount = db.Column(Money, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=BID_ACCEPTED)

    product = db.relationship("Product", back_populates="bids", foreign_keys=[product_id])
    bidder = db.relationship("User", back_populates="bids", foreign_keys=[user_id])


class Notification(db.Model, TimestampMixin):
    __tablename__ = "notifications"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(200), nullable=False, default="")
    message = db.Column(db.Text, nullable=True)
    payload = db.Column(db.JSON, nullable=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime, nullable=True)
