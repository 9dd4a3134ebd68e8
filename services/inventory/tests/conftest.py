import os

# Must be set before ``repo`` builds its engine
os.environ.setdefault("INVENTORY_DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402

import main  # noqa: E402
from repo import InventoryRepo, init_db  # noqa: E402


@pytest.fixture
def db_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'inventory.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repo(db_engine):
    return InventoryRepo(db_engine)


@pytest.fixture
def client(repo):
    main.app.dependency_overrides[main.get_repo] = lambda: repo
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()
