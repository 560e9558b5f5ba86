from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import jwt
import pytest

from agrirent import create_app
from agrirent.config import TestingConfig
from agrirent.extensions import db
from agrirent.models import Equipment, User
from agrirent.models.enums import Role
from agrirent.services import Actor


@pytest.fixture()
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def ctx(app):
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture()
def client(app):
    return app.test_client()


def _seed_users_and_equipment():
    farmer = User(full_name="Ravi Kumar", email="ravi@example.com", phone="9000000001", role="farmer")
    other_farmer = User(full_name="Meena Devi", email="meena@example.com", phone="9000000002", role="farmer")
    owner = User(full_name="Suresh Patil", email="suresh@example.com", phone="9000000003", role="owner")
    other_owner = User(full_name="Anil Rao", email="anil@example.com", phone="9000000004", role="owner")
    admin = User(full_name="Ops Admin", email="admin@example.com", phone="9000000005", role="admin")
    db.session.add_all([farmer, other_farmer, owner, other_owner, admin])
    db.session.flush()

    equipment = Equipment(
        owner_id=owner.id,
        name="Mahindra 575 DI",
        category="tractor",
        manufacturer="Mahindra",
        model="575 DI",
        rate_per_hour=Decimal("500.00"),
        minimum_rental_hours=Decimal("1"),
        deposit=Decimal("0"),
        operator_included=True,
        operator_fee=Decimal("200.00"),
        operator_fee_basis="flat",
        delivery_available=True,
        delivery_fee=Decimal("150.00"),
        is_available=True,
        status="active",
        specifications={"horsepower": 45},
        features=["power steering"],
    )
    db.session.add(equipment)
    db.session.commit()
    return SimpleNamespace(
        farmer=farmer.id,
        other_farmer=other_farmer.id,
        owner=owner.id,
        other_owner=other_owner.id,
        admin=admin.id,
        equipment=equipment.id,
    )


@pytest.fixture()
def seed(app):
    with app.app_context():
        ids = _seed_users_and_equipment()
        db.session.remove()
    return ids


@pytest.fixture()
def actors(seed):
    return SimpleNamespace(
        farmer=Actor(seed.farmer, Role.FARMER),
        other_farmer=Actor(seed.other_farmer, Role.FARMER),
        owner=Actor(seed.owner, Role.OWNER),
        other_owner=Actor(seed.other_owner, Role.OWNER),
        admin=Actor(seed.admin, Role.ADMIN),
    )


@pytest.fixture()
def auth():
    def headers(user_id, expires_in=timedelta(hours=1)):
        token = jwt.encode(
            {"sub": str(user_id), "exp": datetime.now(timezone.utc) + expires_in},
            TestingConfig.JWT_SECRET_KEY,
            algorithm="HS256",
        )
        return {"Authorization": f"Bearer {token}"}

    return headers


@pytest.fixture()
def seeder():
    return _seed_users_and_equipment
