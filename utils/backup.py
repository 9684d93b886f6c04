"""Whole-library backups: JSON snapshots and zip archives around them.

A snapshot is a dict of table name -> rows. Restore also accepts the older
shapes written before decks existed ("datasets", camelCase keys, sentences
without deck/order/import id) and upgrades them before anything is written.
"""
from __future__ import annotations

import io
import json
import logging
import re
import sqlite3
import zipfile
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import config
from db import database
from db.database import bulk_put, clear_table, fetch_rows, get_conn, transaction
from db.schema import SCHEMA_VERSION, TABLE_COLUMNS
from utils.repair import (
    LEGACY_IMPORT_ID,
    assign_sequential_positions,
    default_deck_id,
    derive_path_progress,
    group_by,
    normalize_and_clamp,
    repair_sentence_record,
)

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 4
MANIFEST_NAME = "manifest.json"
SNAPSHOT_NAME = "snapshot.json"
CONFIG_NAME = "config.toml"

# Restore order; later tables refer to earlier ones.
TABLE_ORDER = (
    "languages",
    "decks",
    "import_batches",
    "sentences",
    "legacy_progress",
    "path_progress",
    "srs_state",
    "seen_words",
    "language_stats",
)

# Older snapshot keys for each table.
TABLE_ALIASES = {
    "languages": ("languages", "datasets"),
    "decks": ("decks",),
    "import_batches": ("import_batches", "importBatches", "imports"),
    "sentences": ("sentences",),
    "legacy_progress": ("legacy_progress", "progress"),
    "path_progress": ("path_progress", "pathProgress"),
    "srs_state": ("srs_state", "srs"),
    "seen_words": ("seen_words", "seenWords"),
    "language_stats": ("language_stats", "stats"),
}

FIELD_ALIASES = {"dataset_id": "language_id", "order": "position"}

TABLE_DEFAULTS = {
    "languages": {
        "name": "Untitled",
        "language_tag": "el-GR",
        "rtl_mode": "auto",
        "token_mode": "target",
        "cjk_mode": 0,
        "goal_tokens": 5_000_000,
        "theme": "paper",
        "tts_rate": 1.0,
        "tts_pitch": 1.0,
        "created_at": 0,
    },
    "decks": {"name": "Main", "created_at": 0},
    "import_batches": {
        "filename": "",
        "created_at": 0,
        "mode": "append",
        "start_order": 0,
        "end_order": 0,
        "row_count": 0,
    },
    "sentences": {"source_text": "", "target_text": ""},
    "legacy_progress": {"lifetime_reps": 0, "lifetime_tokens": 0, "current_index": 0, "updated_at": 0},
    "path_progress": {
        "mode": "linear",
        "linear_order": 0,
        "srs_new_order": 0,
        "lifetime_reps": 0,
        "lifetime_tokens": 0,
        "updated_at": 0,
    },
    "srs_state": {"due_at": 0, "reps": 0, "lapses": 0, "interval_days": 0, "ease": 2.5, "updated_at": 0},
    "seen_words": {"first_seen_at": 0},
    "language_stats": {"unique_words_seen": 0, "updated_at": 0},
}

TABLE_CHOICES = {
    "languages": {
        "rtl_mode": ("auto", "rtl", "ltr"),
        "token_mode": ("target", "source", "both"),
        "theme": ("paper", "desk", "dark"),
    },
    "import_batches": {"mode": ("append", "replace")},
    "path_progress": {"mode": ("linear", "srs")},
}

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])([A-Z]+)")


class BackupError(ValueError):
    """Unreadable or incompatible backup payload."""


@dataclass
class BackupArchive:
    manifest: Dict
    snapshot: Dict
    config_text: Optional[str] = None


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def snake_key(key: str) -> str:
    """sourceText -> source_text, preferredVoiceURI -> preferred_voice_uri, datasetId -> language_id."""
    snake = _CAMEL_RE.sub(lambda match: "_" + match.group(1), str(key)).lower()
    return FIELD_ALIASES.get(snake, snake)


def export_snapshot(conn) -> Dict:
    snapshot = {"version": SNAPSHOT_VERSION, "exported_at": _now_ms()}
    for table in TABLE_ORDER:
        rows = fetch_rows(conn, table)
        if table == "languages":
            for row in rows:
                row["cjk_mode"] = bool(row["cjk_mode"])
        snapshot[table] = rows
    return snapshot


def export_json(conn) -> str:
    return json.dumps(export_snapshot(conn), ensure_ascii=False, indent=2)


def _table_rows(snapshot: Dict, table: str) -> List[Dict]:
    for key in TABLE_ALIASES[table]:
        rows = snapshot.get(key)
        if rows is None:
            continue
        if not isinstance(rows, list):
            raise BackupError(f'"{key}" must be a list')
        return [row for row in rows if isinstance(row, dict)]
    return []


def _normalize_row(table: str, raw: Dict) -> Dict:
    """Snake-case keys, default missing or unknown values, and park unknown sentence fields in legacy_json."""
    columns = TABLE_COLUMNS[table]
    row = {}
    extra = {}
    for key, value in raw.items():
        name = snake_key(key)
        if name in columns and name not in row:
            row[name] = value
        else:
            extra[key] = value
    for key, value in TABLE_DEFAULTS.get(table, {}).items():
        if row.get(key) is None:
            row[key] = value
    for key, allowed in TABLE_CHOICES.get(table, {}).items():
        if row[key] not in allowed:
            row[key] = TABLE_DEFAULTS[table][key]
    if table == "sentences" and extra and not row.get("legacy_json"):
        row["legacy_json"] = json.dumps(extra, ensure_ascii=False)
    if table == "languages":
        row["cjk_mode"] = 1 if row.get("cjk_mode") else 0
    return row


def upgrade_snapshot(snapshot: Dict) -> Dict[str, List[Dict]]:
    """Bring any supported snapshot shape up to the current tables, repaired."""
    if not isinstance(snapshot, dict):
        raise BackupError("Backup must be a JSON object")
    version = snapshot.get("version")
    if isinstance(version, int) and version > SNAPSHOT_VERSION:
        raise BackupError(f"Backup version {version} is newer than this app supports ({SNAPSHOT_VERSION})")

    tables = {table: [_normalize_row(table, row) for row in _table_rows(snapshot, table)] for table in TABLE_ORDER}
    now = _now_ms()

    languages = {row["id"]: row for row in tables["languages"] if row.get("id")}
    tables["languages"] = list(languages.values())

    decks = [deck for deck in tables["decks"] if deck.get("id") and deck.get("language_id") in languages]
    decks_by_language = group_by(decks, "language_id")
    for language in languages.values():
        if not decks_by_language.get((language["id"],)):
            deck = {
                "id": default_deck_id(language["id"]),
                "language_id": language["id"],
                "name": "Main",
                "created_at": language["created_at"] or now,
            }
            decks.append(deck)
            decks_by_language[(language["id"],)] = [deck]
    tables["decks"] = decks
    default_deck = {
        key[0]: sorted(rows, key=lambda deck: (deck["created_at"], deck["id"]))[0]["id"]
        for key, rows in decks_by_language.items()
    }
    deck_ids = {deck["id"] for deck in decks}

    sentences = []
    for sentence in tables["sentences"]:
        language = languages.get(sentence.get("language_id"))
        if not sentence.get("id") or not language:
            logger.warning("Skipping sentence %s with unknown language", sentence.get("id"))
            continue
        legacy_row = (
            sentence.get("deck_id") not in deck_ids
            or sentence.get("position") is None
            or not sentence.get("import_id")
        )
        if sentence.get("deck_id") not in deck_ids:
            sentence["deck_id"] = default_deck[language["id"]]
            sentence["position"] = None
        if not sentence.get("import_id"):
            sentence["import_id"] = LEGACY_IMPORT_ID
        sentences.append(repair_sentence_record(sentence, bool(language["cjk_mode"]), allow_zero_tokens=not legacy_row))
    for (language_id, deck_id), rows in group_by(sentences, "language_id", "deck_id").items():
        placed = [row["position"] for row in rows if row["position"] is not None]
        assign_sequential_positions(rows, max(placed) + 1 if placed else 0)
    tables["sentences"] = sentences

    legacy = {row["language_id"]: row for row in tables["legacy_progress"] if row.get("language_id") in languages}
    for language_id in languages:
        legacy.setdefault(language_id, {
            "language_id": language_id,
            "lifetime_reps": 0,
            "lifetime_tokens": 0,
            "current_index": 0,
            "updated_at": now,
        })
    tables["legacy_progress"] = list(legacy.values())

    progress = {
        (row["language_id"], row["deck_id"]): row
        for row in tables["path_progress"]
        if row.get("deck_id") in deck_ids
    }
    for deck in decks:
        key = (deck["language_id"], deck["id"])
        if key not in progress:
            seed = legacy[deck["language_id"]] if default_deck[deck["language_id"]] == deck["id"] else None
            progress[key] = derive_path_progress(deck["language_id"], deck["id"], seed, now)
    tables["path_progress"] = list(progress.values())

    sentence_keys = {(row["language_id"], row["deck_id"], row["id"]) for row in sentences}
    tables["srs_state"] = [
        row for row in tables["srs_state"]
        if (row.get("language_id"), row.get("deck_id"), row.get("sentence_id")) in sentence_keys
    ]
    tables["seen_words"] = [row for row in tables["seen_words"] if row.get("language_id") in languages and row.get("token")]

    stats = {row["language_id"]: row for row in tables["language_stats"] if row.get("language_id") in languages}
    seen_counts = {key[0]: len(rows) for key, rows in group_by(tables["seen_words"], "language_id").items()}
    for language_id in languages:
        stats.setdefault(language_id, {
            "language_id": language_id,
            "unique_words_seen": seen_counts.get(language_id, 0),
            "updated_at": now,
        })
    tables["language_stats"] = list(stats.values())
    return tables


def restore_snapshot(conn, snapshot: Dict) -> Dict[str, int]:
    """Replace every table with the snapshot's contents. All or nothing."""
    tables = upgrade_snapshot(snapshot)
    counts = {}
    try:
        with transaction(conn):
            for table in reversed(TABLE_ORDER):
                clear_table(conn, table)
            for table in TABLE_ORDER:
                counts[table] = bulk_put(conn, table, tables[table])
            for deck in tables["decks"]:
                normalize_and_clamp(conn, deck["language_id"], deck["id"])
    except sqlite3.IntegrityError as exc:
        raise BackupError(f"Backup rows are inconsistent: {exc}") from exc
    logger.info(
        "Restored %s languages, %s decks, %s sentences",
        counts["languages"], counts["decks"], counts["sentences"],
    )
    return counts


def restore_json(conn, text: str) -> Dict[str, int]:
    try:
        snapshot = json.loads(text)
    except ValueError as exc:
        raise BackupError(f"Invalid JSON: {exc}") from exc
    return restore_snapshot(conn, snapshot)


def build_backup_manifest(schema_version: int) -> dict:
    """Build a manifest for backups with timestamp and schema version."""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "schema_version": schema_version,
        "snapshot_version": SNAPSHOT_VERSION,
    }


def _write_archive(target, conn) -> None:
    manifest = build_backup_manifest(database.get_schema_version(conn))
    with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as zipf:
        zipf.writestr(MANIFEST_NAME, json.dumps(manifest, indent=2))
        zipf.writestr(SNAPSHOT_NAME, export_json(conn))
        if config.CONFIG_PATH.exists():
            zipf.write(config.CONFIG_PATH, arcname=CONFIG_NAME)


def create_backup_archive_bytes(conn) -> bytes:
    """Create a backup zip archive in memory."""
    buffer = io.BytesIO()
    _write_archive(buffer, conn)
    return buffer.getvalue()


def create_backup_archive_file(destination: Path, conn) -> Path:
    """Create a backup zip archive at the given destination."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    _write_archive(destination, conn)
    logger.info("Wrote backup archive %s", destination)
    return destination


def read_backup_archive(data: bytes) -> BackupArchive:
    if not data:
        raise BackupError("Backup file is empty")
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zipf:
            names = set(zipf.namelist())
            if MANIFEST_NAME not in names:
                raise BackupError("Backup manifest is missing")
            if SNAPSHOT_NAME not in names:
                raise BackupError("Backup missing required files")
            manifest = json.loads(zipf.read(MANIFEST_NAME))
            snapshot = json.loads(zipf.read(SNAPSHOT_NAME))
            config_text = zipf.read(CONFIG_NAME).decode("utf-8") if CONFIG_NAME in names else None
    except zipfile.BadZipFile as exc:
        raise BackupError("Invalid zip archive") from exc
    except ValueError as exc:
        raise BackupError(f"Backup payload invalid: {exc}") from exc
    schema_version = manifest.get("schema_version")
    if not isinstance(schema_version, int) or schema_version > SCHEMA_VERSION:
        raise BackupError(f"Schema version mismatch (expected at most {SCHEMA_VERSION}, got {schema_version})")
    return BackupArchive(manifest=manifest, snapshot=snapshot, config_text=config_text)


def restore_backup_archive(conn, data: bytes) -> Dict[str, int]:
    """Restore an archive, keeping a safety copy of the current library first."""
    archive = read_backup_archive(data)
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    create_backup_archive_file(database.BACKUP_DIR / f"safety-{timestamp}.zip", conn)
    counts = restore_snapshot(conn, archive.snapshot)
    if archive.config_text is not None:
        config.CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        config.CONFIG_PATH.write_text(archive.config_text, encoding="utf-8")
    return counts


def run_daily_backup() -> Optional[Path]:
    """Create a daily rolling backup of the library and prune old archives."""
    backup_cfg = config.load_config()["backup"]
    if not backup_cfg["daily"] or not database.DB_PATH.exists():
        return None
    backup_dir = database.BACKUP_DIR
    backup_dir.mkdir(parents=True, exist_ok=True)
    existing = sorted(backup_dir.glob("backup-*.zip"), key=lambda path: path.stat().st_mtime, reverse=True)
    if existing and date.fromtimestamp(existing[0].stat().st_mtime) == date.today():
        return None
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    with get_conn() as conn:
        backup_path = create_backup_archive_file(backup_dir / f"backup-{timestamp}.zip", conn)
    existing = sorted(backup_dir.glob("backup-*.zip"), key=lambda path: path.stat().st_mtime, reverse=True)
    for old_backup in existing[backup_cfg["keep"]:]:
        old_backup.unlink(missing_ok=True)
    return backup_path
