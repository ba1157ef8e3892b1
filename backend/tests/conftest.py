"""
Shared fixtures.

DATABASE_URL must point at a throwaway SQLite file before orgcal.db is
imported, since the engine is built at import time.
"""

import os
import tempfile

_tmp_dir = tempfile.mkdtemp(prefix="orgcal-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp_dir, 'test.db')}"

import pytest
from fastapi.testclient import TestClient

from orgcal.db import Base, engine, init_db


@pytest.fixture
def client():
    from orgcal.main import app

    init_db()
    with TestClient(app) as c:
        yield c
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def room(client):
    """A room that does not allow double booking."""
    r = client.post("/rooms", json={"name": "Main Hall"})
    assert r.status_code == 201
    return r.json()


@pytest.fixture
def shared_room(client):
    r = client.post("/rooms", json={"name": "Other (off site)", "allows_overlap": True})
    assert r.status_code == 201
    return r.json()


@pytest.fixture
def book(client):
    """Post an event; returns the raw response."""
    def _book(room_id, start, end, title="Meeting", **extra):
        payload = {"title": title, "room_id": room_id, "start": start, "end": end, **extra}
        return client.post("/events", json=payload)
    return _book
