# tests/conftest.py

from __future__ import annotations

import pytest

from app import Device, create_app
from store import ChangeHub


@pytest.fixture()
def app(tmp_path):
    """Flask app on a throwaway SQLite file."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test',
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'tasks.db'}",
    })
    yield app
    app.extensions['devices'].close()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def ctx(app):
    with app.app_context():
        yield


@pytest.fixture()
def hub() -> ChangeHub:
    return ChangeHub()


@pytest.fixture()
def make_device(ctx, hub):
    """
    Build devices sharing one change hub, like browsers of the same server.

    The gate is not started; tests decide when to mount screens.
    """
    devices: list[Device] = []

    def factory() -> Device:
        device = Device(hub, password_min_length=6)
        devices.append(device)
        return device

    yield factory
    for device in devices:
        device.gate.stop()


@pytest.fixture()
def signed_in(make_device):
    device = make_device()
    device.auth.register('a@x.com', 'secret1')
    return device
