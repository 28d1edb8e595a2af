from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app import create_app
from app.burial.bookings import BookingRequest, booking_workflow
from app.core.config import Config
from app.core.extensions import db
from app.core.models import Plot, Staff, User, seed_demo_data
from app.core.principal import principal_for


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    LOG_LEVEL = "DEBUG"


BURIAL_AT = "2026-11-02T10:00:00"


@pytest.fixture
def app(tmp_path):
    app = create_app(TestConfig)
    app.config["STORAGE_ROOT"] = str(tmp_path / "storage")
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login_admin(client):
    def _login():
        return client.post("/auth/login", data={"email": "admin@kubur.local", "password": "admin123"})

    return _login


@pytest.fixture
def login_user(client):
    def _login(email: str = "waris@kubur.local", password: str = "waris123"):
        return client.post("/auth/login", data={"email": email, "password": password})

    return _login


def principal(email: str):
    return principal_for(User.query.filter_by(email=email).first())


def plot_id(identifier: str) -> int:
    return Plot.query.filter_by(plot_identifier=identifier).first().id


def staff_id(name: str) -> int:
    return Staff.query.filter_by(name=name).first().id


def booking_payload(
    plot: str = "A1-5",
    ic_number: str = "900101015678",
    digger: object = "not-needed-penggali",
    washer: object = "not-needed-pemandi",
    kits: list[dict[str, object]] | None = None,
    when: str = BURIAL_AT,
    packages: list[int] | None = None,
) -> dict[str, object]:
    return {
        "deceasedName": "Allahyarham Ismail bin Karim",
        "deceasedIC": ic_number,
        "deceasedGender": "MALE",
        "plotId": plot_id(plot),
        "bookingDateTime": when,
        "selectedPackageIds": packages or [],
        "selectedFuneralKits": kits or [],
        "staffAssignments": [
            {"role": "GRAVE_DIGGER", "staffId": digger},
            {"role": "BODY_WASHER", "staffId": washer},
        ],
    }


def create_booking(email: str = "waris@kubur.local", **kwargs):
    workflow = booking_workflow()
    request = BookingRequest.from_payload(booking_payload(**kwargs), workflow.roster)
    return workflow.create(request, principal(email))


def local_day(value: str):
    return datetime.fromisoformat(value).date()
