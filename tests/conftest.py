"""Shared test fixtures and configuration for marketplace backend tests."""
import os
import tempfile

# Must be set before anything from marketplace is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["APP_ENV"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="marketplace-uploads-")
os.environ["SMTP_HOST"] = ""
os.environ["TWILIO_ACCOUNT_SID"] = ""
os.environ["CLOUDINARY_CLOUD_NAME"] = ""

import pytest
from httpx import ASGITransport, AsyncClient

from marketplace.auth.utils import get_password_hash
from marketplace.database import AsyncSessionLocal, engine, init_db
from marketplace.main import app
from marketplace.models import Business, User
from marketplace.realtime import coupon_feed, manager, presence

from tests.helpers import DEFAULT_PASSWORD


@pytest.fixture(autouse=True)
async def database():
    """Fresh in-memory database for every test."""
    await init_db()
    yield
    await engine.dispose()


@pytest.fixture(autouse=True)
def reset_realtime():
    """The hub, presence and coupon feed are process-wide singletons."""
    manager.connections.clear()
    manager.rooms.clear()
    presence.counts.clear()
    presence.status.clear()
    coupon_feed.recent = []
    yield
    for task in presence._away_tasks.values():
        task.cancel()
    presence._away_tasks.clear()


@pytest.fixture
async def db():
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def make_user(db):
    """Factory that persists a user and returns it."""
    counter = {"n": 0}

    async def _make(
        correo=None,
        password=DEFAULT_PASSWORD,
        tipo="usuario",
        perfil=1,
        nombre="Test User",
        nickname=None,
        **extra,
    ) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            correo=correo or f"user{n}@example.com",
            nombre=nombre,
            hashed_password=get_password_hash(password) if password else None,
            tipo=tipo,
            perfil=perfil,
            nickname=nickname or f"user{n}",
            **extra,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_business(db):
    async def _make(owner: User, nombre="Tacos Don Pepe", activo=True, **extra) -> Business:
        fields = {
            "categoria": "Comida",
            "categoria_slug": "alimentos-consumo",
            "ciudad": "Puerto Peñasco",
            "fotos": [],
            "badges": [],
            **extra,
        }
        business = Business(user_id=owner.id, nombre=nombre, activo=activo, **fields)
        db.add(business)
        await db.commit()
        await db.refresh(business)
        return business

    return _make

