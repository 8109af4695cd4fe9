# auctionhouse/cli.py
from datetime import timedelta
from decimal import Decimal
import click
from sqlalchemy import select
from .extensions import db
from .models import (
    User, Category, Product, ROLE_ADMIN, ROLE_AGENT, ROLE_USER, LISTING_APPROVED, SCHEDULED, utcnow,
)


def _user(email, name, role, password):
    u = db.session.scalar(select(User).where(User.email == email))
    if u is None:
        u = User(name=name, email=email, role=role, balance_virtual=Decimal("10000"))
        u.set_password(password)
        db.session.add(u)
        db.session.flush()
    return u


def register_cli(app):
    @app.cli.command("seed")
    def seed():
        """Carga datos de ejemplo (admin/agente/usuario, categorías y 3 subastas)."""
        _user("admin@auctionhouse.test", "Admin", ROLE_ADMIN, "admin123")
        agent = _user("agent@auctionhouse.test", "Agent", ROLE_AGENT, "agent123")
        _user("user@auctionhouse.test", "User", ROLE_USER, "user123")

        cats = {}
        for slug, name in (("art", "Arte"), ("watches", "Relojes"), ("cars", "Autos")):
            c = db.session.scalar(select(Category).where(Category.slug == slug))
            if c is None:
                c = Category(slug=slug, name=name)
                db.session.add(c)
                db.session.flush()
            cats[slug] = c

        if not db.session.scalar(select(Product.id).where(Product.agent_id == agent.id)):
            now = utcnow()
            db.session.add_all([
                Product(agent_id=agent.id, category_id=cats["art"].id, title="Óleo sobre lienzo, 1920",
                        status=LISTING_APPROVED, auction_status=SCHEDULED,
                        start_time=now, end_time=now + timedelta(hours=2),
                        starting_bid=Decimal("100"), bid_increment=Decimal("10")),
                Product(agent_id=agent.id, category_id=cats["watches"].id, title="Reloj suizo automático",
                        status=LISTING_APPROVED, auction_status=SCHEDULED,
                        start_time=now, end_time=now + timedelta(days=1),
                        starting_bid=Decimal("250"), bid_increment=Decimal("25"),
                        buy_now_price=Decimal("900")),
                Product(agent_id=agent.id, category_id=cats["cars"].id, title="Ford Mustang 1969",
                        status=LISTING_APPROVED, auction_status=SCHEDULED,
                        start_time=now + timedelta(days=1), end_time=now + timedelta(days=7),
                        starting_bid=Decimal("20000"), bid_increment=Decimal("500"),
                        reserve_price=Decimal("35000")),
            ])
        db.session.commit()
        click.echo("Seed listo.")

    @app.cli.command("sweep-auctions")
    def sweep_auctions_cmd():
        """Aplica una vez las transiciones de estado vencidas."""
        from .tasks import sweep_auctions
        click.echo(f"{sweep_auctions(app)} subastas actualizadas.")

    @app.cli.command("live-server")
    @click.option("--host", default="0.0.0.0")
    @click.option("--port", default=None, type=int)
    def live_server(host, port):
        """Levanta el broadcaster en vivo (Socket.IO + SSE)."""
        from .extensions import socketio
        from .live.broadcaster import create_broadcaster_app
        live_app = create_broadcaster_app()
        socketio.run(live_app, host=host, port=port or live_app.config["LIVE_PORT"])
