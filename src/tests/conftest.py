# tests/conftest.py
from datetime import timedelta
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from auctionhouse import create_app
from auctionhouse.extensions import db

# Importa los modelos para que SQLAlchemy conozca las tablas
from auctionhouse import models  # noqa
from auctionhouse.models import User, Product, Category, LISTING_APPROVED, LIVE, utcnow

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_ENGINE_OPTIONS": {},
    "RUN_SCHEDULER": False,
    "LIVE_BROADCAST_URL": "",
    "BCRYPT_LOG_ROUNDS": 4,
    "JWT_SECRET_KEY": "test-jwt-secret-key-with-enough-length-for-hs256",
    "BROADCAST_SECRET": "test-broadcast-secret",
    "MIN_INCREMENT_DEFAULT": 5,
    "BID_MAX_ATTEMPTS": 2,
}


class RecordingPublisher:
    """Publicador de pruebas: guarda (auction_id, evento) en orden."""

    connected = True

    def __init__(self):
        self.events = []

    def start(self):
        pass

    def publish(self, auction_id, event):
        self.events.append((auction_id, event))
        return True

    def types(self, auction_id=None):
        return [e["type"] for aid, e in self.events if auction_id is None or aid == auction_id]

    def close(self):
        pass


@pytest.fixture()
def app_instance(tmp_path):
    """
    App de pruebas:
    - Sin scheduler ni broadcaster real.
    - SQLite en archivo temporal, una base por test.
    """
    application = create_app(dict(TEST_CONFIG, SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'test.sqlite'}"))
    application.extensions["live_publisher"] = RecordingPublisher()

    with application.app_context():
        db.create_all()

    yield application

    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def app_ctx(app_instance):
    with app_instance.app_context():
        yield


@pytest.fixture()
def publisher(app_instance):
    return app_instance.extensions["live_publisher"]


@pytest.fixture()
def make_user(app_instance):
    """Crea un usuario directo en la base y devuelve su id."""
    counter = {"n": 0}

    def _mk(role="USER", name=None, is_active=True):
        counter["n"] += 1
        with app_instance.app_context():
            u = User(
                name=name or f"{role.title()} {counter['n']}",
                email=f"{role.lower()}{counter['n']}@test.local",
                role=role,
                is_active=is_active,
            )
            u.set_password("secret123")
            db.session.add(u)
            db.session.commit()
            return u.id
    return _mk


@pytest.fixture()
def headers_for(app_instance):
    def _mk(user_id):
        with app_instance.app_context():
            token = create_access_token(identity=str(user_id))
        return {"Authorization": f"Bearer {token}"}
    return _mk


@pytest.fixture()
def make_category(app_instance):
    def _mk(slug, name=None):
        with app_instance.app_context():
            c = Category(slug=slug, name=name or slug.title())
            db.session.add(c)
            db.session.commit()
            return c.id
    return _mk


@pytest.fixture()
def make_auction(app_instance, make_user):
    """
    Subasta LIVE y aprobada por defecto: empezó hace una hora, termina en una.
    Los montos se pasan como Decimal o str.
    """
    def _mk(agent_id=None, **fields):
        if agent_id is None:
            agent_id = make_user("AGENT")
        now = utcnow()
        values = {
            "title": "Lote de prueba",
            "status": LISTING_APPROVED,
            "auction_status": LIVE,
            "start_time": now - timedelta(hours=1),
            "end_time": now + timedelta(hours=1),
            "starting_bid": Decimal("100"),
            "bid_increment": Decimal("10"),
        }
        values.update(fields)
        for key in ("starting_bid", "bid_increment", "reserve_price", "buy_now_price", "current_bid"):
            if values.get(key) is not None:
                values[key] = Decimal(str(values[key]))
        with app_instance.app_context():
            p = Product(agent_id=agent_id, **values)
            db.session.add(p)
            db.session.commit()
            return p.id
    return _mk


@pytest.fixture()
def live_app(app_instance):
    """Broadcaster apuntando a la misma base que la API de pruebas."""
    from auctionhouse.live.broadcaster import create_broadcaster_app
    return create_broadcaster_app(
        dict(TEST_CONFIG, SQLALCHEMY_DATABASE_URI=app_instance.config["SQLALCHEMY_DATABASE_URI"])
    )
