"""Shared fixtures."""

import tempfile
from pathlib import Path

import pytest

from mystmarket.economics.engine import EconomicsConfig
from mystmarket.storage.db import get_connection, init_schema


@pytest.fixture
def temp_db():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    conn = get_connection(path)
    init_schema(conn)
    yield conn
    conn.close()
    for f in Path(tmp).iterdir():
        f.unlink()
    Path(tmp).rmdir()


@pytest.fixture
def economics():
    return EconomicsConfig()
