from pathlib import Path

import pytest

import config
from db import database
from utils.library import create_language, list_decks

ENV_OVERRIDES = (
    "IMPORT_BATCH_SIZE",
    "SRS_AGAIN_DELAY_MINUTES",
    "SRS_NEW_CARD_PROBE_LIMIT",
    "BACKUP_KEEP",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def config_dir(tmp_path, monkeypatch) -> Path:
    config_dir = tmp_path / ".sentencepaths"
    config_dir.mkdir()
    monkeypatch.setattr(config, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config, "CONFIG_PATH", config_dir / "config.toml")
    monkeypatch.setattr(database, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(database, "DB_PATH", config_dir / "sentencepaths.db")
    monkeypatch.setattr(database, "BACKUP_DIR", config_dir / "backups")
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    return config_dir


@pytest.fixture
def conn(config_dir):
    database.init_db()
    with database.get_conn() as conn:
        yield conn


@pytest.fixture
def language(conn):
    return create_language(conn, "Greek", "el-GR")


@pytest.fixture
def deck(conn, language):
    return list_decks(conn, language["id"])[0]
