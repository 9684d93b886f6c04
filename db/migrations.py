"""Forward-only data migrations, keyed by the schema version they produce.

Every step must be idempotent: a crash after a partially applied step leaves
PRAGMA user_version untouched, so the step runs again on the next start.
"""
import logging
import sqlite3
import time
from typing import Callable, List, Tuple

from utils.repair import (
    LEGACY_IMPORT_ID,
    assign_sequential_positions,
    clamp_path_progress,
    default_deck_id,
    derive_path_progress,
    normalize_deck_positions,
    repair_sentence_record,
)

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def assign_default_decks(conn: sqlite3.Connection) -> None:
    """v2: give every language a deck, every sentence a deck/position, every deck progress."""
    cursor = conn.cursor()
    now = _now_ms()
    cursor.execute("SELECT id, created_at FROM languages")
    languages = [dict(row) for row in cursor.fetchall()]
    for language in languages:
        language_id = language["id"]
        cursor.execute(
            "SELECT id FROM decks WHERE language_id = ? ORDER BY created_at, id LIMIT 1",
            (language_id,),
        )
        deck_row = cursor.fetchone()
        if deck_row:
            deck_id = deck_row["id"]
        else:
            deck_id = default_deck_id(language_id)
            cursor.execute(
                "INSERT OR IGNORE INTO decks (id, language_id, name, created_at) VALUES (?, ?, 'Main', ?)",
                (deck_id, language_id, language["created_at"] or now),
            )
            logger.info("Created default deck for language %s", language_id)

        cursor.execute(
            "SELECT id, position FROM sentences WHERE language_id = ? AND (deck_id IS NULL OR deck_id = '')",
            (language_id,),
        )
        orphans = [dict(row) for row in cursor.fetchall()]
        if orphans:
            cursor.execute(
                "SELECT COALESCE(MAX(position), -1) FROM sentences WHERE language_id = ? AND deck_id = ?",
                (language_id, deck_id),
            )
            start = int(cursor.fetchone()[0]) + 1
            for row in orphans:
                row["position"] = None
            assign_sequential_positions(orphans, start)
            cursor.executemany(
                "UPDATE sentences SET deck_id = ?, position = ? WHERE id = ?",
                [(deck_id, row["position"], row["id"]) for row in orphans],
            )
            logger.info("Assigned %s legacy sentences to deck %s", len(orphans), deck_id)

        cursor.execute(
            "SELECT 1 FROM path_progress WHERE language_id = ? AND deck_id = ?",
            (language_id, deck_id),
        )
        if not cursor.fetchone():
            cursor.execute(
                "SELECT lifetime_reps, lifetime_tokens, current_index FROM legacy_progress WHERE language_id = ?",
                (language_id,),
            )
            legacy = cursor.fetchone()
            progress = derive_path_progress(language_id, deck_id, dict(legacy) if legacy else None, now)
            cursor.execute(
                """
                INSERT INTO path_progress (
                    language_id, deck_id, mode, linear_order, srs_new_order,
                    lifetime_reps, lifetime_tokens, updated_at
                )
                VALUES (:language_id, :deck_id, :mode, :linear_order, :srs_new_order,
                        :lifetime_reps, :lifetime_tokens, :updated_at)
                """,
                progress,
            )

    cursor.execute(
        "UPDATE sentences SET import_id = ? WHERE import_id IS NULL OR import_id = ''",
        (LEGACY_IMPORT_ID,),
    )


def seed_language_stats(conn: sqlite3.Connection) -> None:
    """v3: zero-valued stats row for every language lacking one."""
    conn.execute(
        """
        INSERT OR IGNORE INTO language_stats (language_id, unique_words_seen, updated_at)
        SELECT id, 0, ? FROM languages
        """,
        (_now_ms(),),
    )


def repair_sentences(conn: sqlite3.Connection) -> None:
    """v4: recover text fields and token counts, then normalize orders and clamp pointers."""
    cursor = conn.cursor()
    cursor.execute("SELECT id, cjk_mode FROM languages")
    cjk_by_language = {row["id"]: bool(row["cjk_mode"]) for row in cursor.fetchall()}

    cursor.execute(
        """
        SELECT id, language_id, position, source_text, target_text,
               transliteration_text, gloss_text, token_count, legacy_json
        FROM sentences
        """
    )
    updates = []
    for row in cursor.fetchall():
        original = dict(row)
        repaired = repair_sentence_record(original, cjk_by_language.get(original["language_id"], False))
        if repaired["position"] is None:
            repaired["position"] = 0
        fields = ("position", "source_text", "target_text", "transliteration_text", "gloss_text", "token_count")
        if any(repaired[field] != original[field] for field in fields):
            updates.append(tuple(repaired[field] for field in fields) + (original["id"],))
    if updates:
        cursor.executemany(
            """
            UPDATE sentences
            SET position = ?, source_text = ?, target_text = ?, transliteration_text = ?,
                gloss_text = ?, token_count = ?
            WHERE id = ?
            """,
            updates,
        )
        logger.info("Repaired %s sentence rows", len(updates))

    cursor.execute("SELECT language_id, id FROM decks")
    for deck in cursor.fetchall():
        count = normalize_deck_positions(conn, deck["language_id"], deck["id"])
        clamp_path_progress(conn, deck["language_id"], deck["id"], count)

    seed_language_stats(conn)


MIGRATIONS: List[Tuple[int, Callable[[sqlite3.Connection], None]]] = [
    (2, assign_default_decks),
    (3, seed_language_stats),
    (4, repair_sentences),
]


def run_migrations(conn: sqlite3.Connection, current_version: int) -> List[int]:
    """Apply every step newer than current_version, in order. Caller owns the transaction."""
    applied = []
    for version, step in MIGRATIONS:
        if version <= current_version:
            continue
        logger.info("Applying migration v%s (%s)", version, step.__name__)
        step(conn)
        applied.append(version)
    return applied
