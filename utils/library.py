from __future__ import annotations

import logging
import time
import uuid
from typing import Dict, Iterable, List, Optional

from config import load_config
from db.database import bulk_put, transaction
from utils.repair import normalize_and_clamp
from utils.sample import SAMPLE_FILENAME, sample_sentence_rows

logger = logging.getLogger(__name__)

DEFAULT_DECK_NAME = "Main"
SAMPLE_LANGUAGE_NAME = "Sample (Greek)"

LANGUAGE_SETTINGS = (
    "name", "language_tag", "rtl_mode", "token_mode", "cjk_mode", "goal_tokens",
    "theme", "tts_rate", "tts_pitch", "preferred_voice_uri",
)


class LibraryError(ValueError):
    """Invalid language/deck operation requested by the user."""


def make_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4()}"


def now_ms() -> int:
    return int(time.time() * 1000)


def _language_from_row(row) -> Dict:
    language = dict(row)
    language["cjk_mode"] = bool(language.get("cjk_mode"))
    return language


def get_language(conn, language_id: str) -> Optional[Dict]:
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM languages WHERE id = ?", (language_id,))
    row = cursor.fetchone()
    return _language_from_row(row) if row else None


def list_languages(conn) -> List[Dict]:
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM languages ORDER BY created_at, id")
    return [_language_from_row(row) for row in cursor.fetchall()]


def create_language(conn, name: Optional[str] = None, language_tag: Optional[str] = None, **settings) -> Dict:
    """Create a language with its "Main" deck, progress and stats rows."""
    library_cfg = load_config()["library"]
    now = now_ms()
    language = {
        "id": make_id("ds"),
        "name": (name or "").strip() or "New language",
        "language_tag": (language_tag or "").strip() or library_cfg["default_language_tag"],
        "rtl_mode": settings.get("rtl_mode") or "auto",
        "token_mode": settings.get("token_mode") or "target",
        "cjk_mode": 1 if settings.get("cjk_mode") else 0,
        "goal_tokens": settings.get("goal_tokens") or library_cfg["default_goal_tokens"],
        "theme": settings.get("theme") or "paper",
        "tts_rate": settings.get("tts_rate") or 1.0,
        "tts_pitch": settings.get("tts_pitch") or 1.0,
        "preferred_voice_uri": settings.get("preferred_voice_uri"),
        "created_at": now,
    }
    with transaction(conn):
        bulk_put(conn, "languages", [language])
        # Legacy dataset-wide row, kept so older app versions can read backups.
        conn.execute(
            """
            INSERT OR IGNORE INTO legacy_progress (language_id, lifetime_reps, lifetime_tokens, current_index, updated_at)
            VALUES (?, 0, 0, 0, ?)
            """,
            (language["id"], now),
        )
        create_deck(conn, language["id"], DEFAULT_DECK_NAME)
        ensure_language_stats(conn, language["id"])
    logger.info("Created language %s (%s)", language["name"], language["id"])
    return get_language(conn, language["id"])


def update_language(conn, language_id: str, **changes) -> Dict:
    updates = {key: value for key, value in changes.items() if key in LANGUAGE_SETTINGS and value is not None}
    if "name" in updates:
        updates["name"] = updates["name"].strip()
        if not updates["name"]:
            raise LibraryError("Name is required")
    if "cjk_mode" in updates:
        updates["cjk_mode"] = 1 if updates["cjk_mode"] else 0
    if not get_language(conn, language_id):
        raise LibraryError("Language not found")
    if updates:
        assignments = ", ".join(f"{key} = ?" for key in updates)
        with transaction(conn):
            conn.execute(
                f"UPDATE languages SET {assignments} WHERE id = ?",
                (*updates.values(), language_id),
            )
    return get_language(conn, language_id)


def _delete_language_rows(conn, language_id: str) -> None:
    for table in ("srs_state", "path_progress", "import_batches", "sentences", "decks",
                  "seen_words", "language_stats", "legacy_progress"):
        conn.execute(f"DELETE FROM {table} WHERE language_id = ?", (language_id,))
    conn.execute("DELETE FROM languages WHERE id = ?", (language_id,))


def delete_language(conn, language_id: str, reassign_to: Optional[str] = None) -> int:
    """Delete a language; its sentences move to reassign_to's first deck.

    Returns the number of sentences reassigned.
    """
    if not get_language(conn, language_id):
        raise LibraryError("Language not found")
    if reassign_to == language_id:
        raise LibraryError("Cannot reassign sentences to the language being deleted")
    with transaction(conn):
        cursor = conn.cursor()
        cursor.execute("SELECT COUNT(*) FROM sentences WHERE language_id = ?", (language_id,))
        count = int(cursor.fetchone()[0] or 0)
        moved = 0
        if count:
            if not reassign_to:
                raise LibraryError("Language still has sentences; choose a language to reassign them to")
            if not get_language(conn, reassign_to):
                raise LibraryError("Target language not found")
            target_deck = ensure_default_deck(conn, reassign_to)
            start = get_max_position(conn, reassign_to, target_deck["id"]) + 1
            cursor.execute(
                """
                SELECT s.id FROM sentences s
                LEFT JOIN decks d ON d.id = s.deck_id
                WHERE s.language_id = ?
                ORDER BY d.created_at, s.deck_id, s.position, s.id
                """,
                (language_id,),
            )
            ids = [row[0] for row in cursor.fetchall()]
            cursor.executemany(
                """
                UPDATE sentences
                SET language_id = ?, deck_id = ?, position = ?, import_id = 'legacy'
                WHERE id = ?
                """,
                [(reassign_to, target_deck["id"], start + offset, sentence_id) for offset, sentence_id in enumerate(ids)],
            )
            moved = len(ids)
            normalize_and_clamp(conn, reassign_to, target_deck["id"])
        _delete_language_rows(conn, language_id)
    logger.info("Deleted language %s (reassigned %s sentences)", language_id, moved)
    return moved


def get_deck(conn, deck_id: str) -> Optional[Dict]:
    cursor = conn.cursor()
    cursor.execute("SELECT id, language_id, name, created_at FROM decks WHERE id = ?", (deck_id,))
    row = cursor.fetchone()
    return dict(row) if row else None


def list_decks(conn, language_id: str) -> List[Dict]:
    cursor = conn.cursor()
    cursor.execute(
        "SELECT id, language_id, name, created_at FROM decks WHERE language_id = ? ORDER BY created_at, id",
        (language_id,),
    )
    return [dict(row) for row in cursor.fetchall()]


def create_deck(conn, language_id: str, name: str) -> Dict:
    deck = {
        "id": make_id("deck"),
        "language_id": language_id,
        "name": (name or "").strip() or DEFAULT_DECK_NAME,
        "created_at": now_ms(),
    }
    with transaction(conn):
        bulk_put(conn, "decks", [deck])
        ensure_path_progress(conn, language_id, deck["id"])
    return deck


def rename_deck(conn, deck_id: str, name: str) -> Dict:
    name = (name or "").strip()
    if not name:
        raise LibraryError("Name is required")
    with transaction(conn):
        cursor = conn.execute("UPDATE decks SET name = ? WHERE id = ?", (name, deck_id))
        if cursor.rowcount == 0:
            raise LibraryError("Deck not found")
    return get_deck(conn, deck_id)


def delete_deck(conn, deck_id: str) -> None:
    deck = get_deck(conn, deck_id)
    if not deck:
        raise LibraryError("Deck not found")
    if len(list_decks(conn, deck["language_id"])) <= 1:
        raise LibraryError("A language needs at least one deck")
    with transaction(conn):
        for table in ("srs_state", "path_progress", "import_batches", "sentences"):
            conn.execute(
                f"DELETE FROM {table} WHERE language_id = ? AND deck_id = ?",
                (deck["language_id"], deck_id),
            )
        conn.execute("DELETE FROM decks WHERE id = ?", (deck_id,))


def ensure_default_language(conn) -> Dict:
    """First language by creation time, or a seeded sample language on first run."""
    languages = list_languages(conn)
    if languages:
        return languages[0]
    language = create_language(conn, name=SAMPLE_LANGUAGE_NAME, language_tag="el-GR")
    if load_config()["library"]["seed_sample"]:
        seed_sample_sentences(conn, language, ensure_default_deck(conn, language["id"]))
    return language


def seed_sample_sentences(conn, language: Dict, deck: Dict) -> int:
    if get_sentence_count(conn, language["id"], deck["id"]):
        return 0
    import_id = make_id("imp")
    rows = sample_sentence_rows(language["id"], deck["id"], import_id, language["cjk_mode"], make_id)
    with transaction(conn):
        bulk_put(conn, "sentences", rows)
        bulk_put(conn, "import_batches", [{
            "id": import_id,
            "language_id": language["id"],
            "deck_id": deck["id"],
            "filename": SAMPLE_FILENAME,
            "created_at": now_ms(),
            "mode": "append",
            "start_order": 0,
            "end_order": len(rows) - 1,
            "row_count": len(rows),
        }])
    return len(rows)


def ensure_default_deck(conn, language_id: str) -> Dict:
    decks = list_decks(conn, language_id)
    if decks:
        return decks[0]
    return create_deck(conn, language_id, DEFAULT_DECK_NAME)


def ensure_path_progress(conn, language_id: str, deck_id: str) -> Dict:
    cursor = conn.cursor()
    cursor.execute(
        "SELECT * FROM path_progress WHERE language_id = ? AND deck_id = ?",
        (language_id, deck_id),
    )
    row = cursor.fetchone()
    if row:
        return dict(row)
    progress = {
        "language_id": language_id,
        "deck_id": deck_id,
        "mode": "linear",
        "linear_order": 0,
        "srs_new_order": 0,
        "lifetime_reps": 0,
        "lifetime_tokens": 0,
        "updated_at": now_ms(),
    }
    with transaction(conn):
        bulk_put(conn, "path_progress", [progress])
    return progress


def ensure_language_stats(conn, language_id: str) -> Dict:
    cursor = conn.cursor()
    cursor.execute(
        "SELECT language_id, unique_words_seen, updated_at FROM language_stats WHERE language_id = ?",
        (language_id,),
    )
    row = cursor.fetchone()
    if row:
        return dict(row)
    stats = {"language_id": language_id, "unique_words_seen": 0, "updated_at": now_ms()}
    with transaction(conn):
        bulk_put(conn, "language_stats", [stats])
    return stats


def record_tokens_seen(conn, language_id: str, tokens: Iterable[str]) -> int:
    """Insert never-seen tokens and bump the cached count. Returns how many were new."""
    unique = sorted({token.strip() for token in tokens if token and token.strip()})
    if not unique:
        return 0
    now = now_ms()
    with transaction(conn):
        cursor = conn.cursor()
        cursor.executemany(
            "INSERT OR IGNORE INTO seen_words (language_id, token, first_seen_at) VALUES (?, ?, ?)",
            [(language_id, token, now) for token in unique],
        )
        added = max(cursor.rowcount, 0)
        if added:
            stats = ensure_language_stats(conn, language_id)
            cursor.execute(
                "UPDATE language_stats SET unique_words_seen = ?, updated_at = ? WHERE language_id = ?",
                (stats["unique_words_seen"] + added, now, language_id),
            )
    return added


def get_sentence_count(conn, language_id: str, deck_id: str) -> int:
    cursor = conn.cursor()
    cursor.execute(
        "SELECT COUNT(*) FROM sentences WHERE language_id = ? AND deck_id = ?",
        (language_id, deck_id),
    )
    return int(cursor.fetchone()[0] or 0)


def get_max_position(conn, language_id: str, deck_id: str) -> int:
    """Highest position in the deck, or -1 when it is empty."""
    cursor = conn.cursor()
    cursor.execute(
        "SELECT COALESCE(MAX(position), -1) FROM sentences WHERE language_id = ? AND deck_id = ?",
        (language_id, deck_id),
    )
    return int(cursor.fetchone()[0])


def get_sentence_by_order(conn, language_id: str, deck_id: str, position: int) -> Optional[Dict]:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT * FROM sentences
        WHERE language_id = ? AND deck_id = ? AND position = ?
        ORDER BY id
        LIMIT 1
        """,
        (language_id, deck_id, position),
    )
    row = cursor.fetchone()
    return dict(row) if row else None


def list_sentences(conn, language_id: str, deck_id: str, offset: int = 0, limit: int = 100) -> List[Dict]:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT * FROM sentences
        WHERE language_id = ? AND deck_id = ?
        ORDER BY position, id
        LIMIT ? OFFSET ?
        """,
        (language_id, deck_id, limit, offset),
    )
    return [dict(row) for row in cursor.fetchall()]


def get_language_stats(conn, language_id: str) -> Dict:
    stats = ensure_language_stats(conn, language_id)
    cursor = conn.cursor()
    cursor.execute(
        "SELECT COALESCE(SUM(lifetime_reps), 0), COALESCE(SUM(lifetime_tokens), 0) FROM path_progress WHERE language_id = ?",
        (language_id,),
    )
    reps, tokens = cursor.fetchone()
    return {**stats, "lifetime_reps": int(reps), "lifetime_tokens": int(tokens)}
