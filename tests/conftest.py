import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_FILE"] = ""

import pytest
from db.db import engine, init_db
from db.device_model import Base


@pytest.fixture(autouse=True)
def fresh_db():
    """
    Every test starts from empty tables on the shared in-memory database.
    """
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def server_with_client():
    from core import devices
    devices.create_server(1)
    devices.create_client("server1", 1)
    return "server1", "client1"


@pytest.fixture
def standalone():
    from core import devices
    return devices.create_standalone(1)


@pytest.fixture
def report_transfer():
    """
    Write transfer counters onto a server or standalone row the way the recorder hardware does.
    """
    from db.db import session_scope
    from db.device_model import Server, Standalone

    def write(unit_id, **fields):
        model = Standalone if unit_id.startswith("standalone") else Server
        with session_scope() as session:
            unit = session.get(model, unit_id)
            for name, value in fields.items():
                setattr(unit, name, value)

    return write
