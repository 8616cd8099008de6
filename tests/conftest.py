from pathlib import Path

import pytest

from store.db import close_database, open_database


@pytest.fixture
def db(tmp_path: Path):
    database = open_database(tmp_path / "alerts.db")
    yield database
    close_database(database)
