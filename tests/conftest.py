"""Shared fixtures."""

from pathlib import Path

import pytest

from mentionboard.store import MentionStore


@pytest.fixture
def store(tmp_path: Path) -> MentionStore:
    return MentionStore(db_path=tmp_path / "var" / "test.sqlite3")
