import io
import json
import zipfile

import pytest

import config
from db import database
from utils.backup import (
    BackupError,
    TABLE_ORDER,
    create_backup_archive_bytes,
    export_json,
    export_snapshot,
    read_backup_archive,
    restore_backup_archive,
    restore_json,
    restore_snapshot,
    run_daily_backup,
    snake_key,
)
from utils.importers import import_delimited
from utils.library import create_language, ensure_path_progress, list_decks, list_languages, list_sentences
from utils.progress import advance, pick_current, rate, set_mode


def _populate(conn, language, deck):
    import_delimited(
        conn,
        language_id=language["id"],
        deck_id=deck["id"],
        filename="phrases.tsv",
        text="english\ttarget\nGood morning\tΚαλημέρα\nThank you\tΕυχαριστώ πολύ\nYes\tΝαι\n",
    )
    advance(conn, language["id"], deck["id"], 1, True)
    set_mode(conn, language["id"], deck["id"], "srs")
    first = list_sentences(conn, language["id"], deck["id"])[0]
    rate(conn, language["id"], deck["id"], first["id"], "good")


def _tables(snapshot):
    return {table: sorted(json.dumps(row, sort_keys=True) for row in snapshot[table]) for table in TABLE_ORDER}


def test_snapshot_round_trip(conn, language, deck):
    _populate(conn, language, deck)
    before = export_snapshot(conn)

    create_language(conn, "Scratch", "fr-FR")
    restore_snapshot(conn, before)

    after = export_snapshot(conn)
    assert after["version"] == 4
    assert _tables(after) == _tables(before)


def test_restore_upgrades_legacy_camel_case_backup(conn):
    legacy = {
        "datasets": [{"id": "ds_1", "name": "Greek", "languageTag": "el-GR", "createdAt": 5, "cjkMode": False}],
        "sentences": [
            {"id": "b", "datasetId": "ds_1", "english": "Hi", "target": "Γεια"},
            {"id": "a", "datasetId": "ds_1", "sourceText": "Yes", "targetText": "Ναι", "tokenCount": 1},
        ],
        "progress": [{"datasetId": "ds_1", "lifetimeReps": 4, "lifetimeTokens": 9, "currentIndex": 1, "updatedAt": 0}],
        "seenWords": [{"datasetId": "ds_1", "token": "ναι", "firstSeenAt": 1}],
    }

    restore_json(conn, json.dumps(legacy))

    assert [language["id"] for language in list_languages(conn)] == ["ds_1"]
    assert [deck["id"] for deck in list_decks(conn, "ds_1")] == ["deck_ds_1"]
    sentences = list_sentences(conn, "ds_1", "deck_ds_1")
    assert [(s["id"], s["position"], s["import_id"]) for s in sentences] == [("a", 0, "legacy"), ("b", 1, "legacy")]
    assert (sentences[1]["source_text"], sentences[1]["target_text"], sentences[1]["token_count"]) == ("Hi", "Γεια", 1)
    progress = ensure_path_progress(conn, "ds_1", "deck_ds_1")
    assert (progress["linear_order"], progress["lifetime_reps"], progress["lifetime_tokens"]) == (1, 4, 9)
    stats = conn.execute("SELECT unique_words_seen FROM language_stats WHERE language_id = 'ds_1'").fetchone()
    assert stats[0] == 1


def test_restore_rejects_newer_or_malformed_snapshots(conn, language):
    with pytest.raises(BackupError):
        restore_snapshot(conn, {"version": 99, "languages": []})
    with pytest.raises(BackupError):
        restore_json(conn, "{not json")
    with pytest.raises(BackupError):
        restore_snapshot(conn, {"languages": {"id": "x"}})
    assert [row["id"] for row in list_languages(conn)] == [language["id"]]


def test_snake_key_maps_legacy_names():
    assert snake_key("datasetId") == "language_id"
    assert snake_key("preferredVoiceURI") == "preferred_voice_uri"
    assert snake_key("order") == "position"
    assert snake_key("source_text") == "source_text"


def test_archive_round_trip(conn, language, deck):
    _populate(conn, language, deck)
    data = create_backup_archive_bytes(conn)

    with zipfile.ZipFile(io.BytesIO(data)) as zipf:
        assert {"manifest.json", "snapshot.json", "config.toml"} <= set(zipf.namelist())

    archive = read_backup_archive(data)
    assert archive.manifest["schema_version"] == database.get_schema_version(conn)
    assert _tables(archive.snapshot) == _tables(json.loads(export_json(conn)))

    create_language(conn, "Scratch", "fr-FR")
    restore_backup_archive(conn, data)
    assert [row["id"] for row in list_languages(conn)] == [language["id"]]
    assert any(path.name.startswith("safety-") for path in database.BACKUP_DIR.glob("*.zip"))


def test_read_backup_archive_rejects_bad_payloads():
    with pytest.raises(BackupError):
        read_backup_archive(b"")
    with pytest.raises(BackupError):
        read_backup_archive(b"not a zip")

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zipf:
        zipf.writestr("snapshot.json", "{}")
    with pytest.raises(BackupError, match="manifest"):
        read_backup_archive(buffer.getvalue())


def test_daily_backup_runs_once_per_day(conn):
    backups = list(database.BACKUP_DIR.glob("backup-*.zip"))
    assert len(backups) == 1
    assert run_daily_backup() is None


def test_daily_backup_can_be_disabled(config_dir):
    config.load_config()
    text = config.CONFIG_PATH.read_text(encoding="utf-8").replace("daily = true", "daily = false")
    config.CONFIG_PATH.write_text(text, encoding="utf-8")
    database.init_db()
    assert not database.BACKUP_DIR.exists() or not list(database.BACKUP_DIR.glob("backup-*.zip"))


def test_round_trip_keeps_explicit_zero_token_count(conn, language, deck):
    import_delimited(
        conn,
        language_id=language["id"],
        deck_id=deck["id"],
        filename="zero.tsv",
        text="english\ttarget\ttoken count\nHello\tΓεια σου φίλε\t0\n",
    )
    before = export_snapshot(conn)
    assert [row["token_count"] for row in before["sentences"]] == [0]

    restore_snapshot(conn, before)

    assert [s["token_count"] for s in list_sentences(conn, language["id"], deck["id"])] == [0]
    assert _tables(export_snapshot(conn)) == _tables(before)


def test_restore_drops_srs_rows_without_a_sentence(conn, language, deck):
    _populate(conn, language, deck)
    snapshot = export_snapshot(conn)
    rated = [row["sentence_id"] for row in snapshot["srs_state"]]
    snapshot["srs_state"].append({
        **snapshot["srs_state"][0],
        "sentence_id": "ghost",
        "due_at": 0,
    })

    restore_snapshot(conn, snapshot)

    stored = [row[0] for row in conn.execute("SELECT sentence_id FROM srs_state").fetchall()]
    assert stored == rated
    current = pick_current(conn, language["id"], deck["id"])
    assert current.kind == "srs"
    assert current.due_count == 0


def test_restore_replaces_unknown_choices_with_defaults(conn, language, deck):
    _populate(conn, language, deck)
    snapshot = export_snapshot(conn)
    snapshot["languages"][0].update({"theme": "light", "rtl_mode": "", "token_mode": "words"})
    snapshot["path_progress"][0]["mode"] = "review"

    restore_snapshot(conn, snapshot)

    restored = list_languages(conn)[0]
    assert (restored["theme"], restored["rtl_mode"], restored["token_mode"]) == ("paper", "auto", "target")
    assert ensure_path_progress(conn, language["id"], deck["id"])["mode"] == "linear"
