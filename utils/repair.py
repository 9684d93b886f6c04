"""Consistency repairs shared by migrations, importers and restore.

Nothing in here raises for malformed data: rows are patched in place and the
caller decides when to persist them.
"""
from __future__ import annotations

import json
import logging
import math
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from utils.tokenize import count_tokens

logger = logging.getLogger(__name__)

LEGACY_IMPORT_ID = "legacy"

SOURCE_TEXT_CANDIDATES = ("source_text", "sourceText", "english", "source", "en", "front", "prompt")
TARGET_TEXT_CANDIDATES = ("target_text", "targetText", "target", "answer", "back", "text", "sentence", "Target")
TRANSLIT_CANDIDATES = ("transliteration_text", "transliterationText", "transliteration")
GLOSS_CANDIDATES = ("gloss_text", "glossText", "gloss")


def default_deck_id(language_id: str) -> str:
    return f"deck_{language_id}"


def first_non_empty(record: Mapping, candidate_keys: Sequence[str]) -> str:
    """First candidate whose value is a non-blank string, else ''."""
    for key in candidate_keys:
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def legacy_fields(row: Mapping) -> Dict:
    """Merge a row with the raw fields it carried before the v2 schema."""
    merged = dict(row)
    raw = row.get("legacy_json")
    if raw:
        try:
            extra = json.loads(raw)
        except (TypeError, ValueError):
            extra = None
        if isinstance(extra, dict):
            for key, value in extra.items():
                if merged.get(key) in (None, ""):
                    merged[key] = value
    return merged


def _valid_token_count(value, allow_zero: bool = False) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and (value > 0 or (allow_zero and value == 0))


def repair_sentence_record(row: Mapping, cjk_mode: bool, allow_zero_tokens: bool = False) -> Dict:
    """Backfill text fields from historical names and recompute bad token counts.

    Rows already in the current shape may carry an explicit zero count from
    an import override; pass allow_zero_tokens to keep it.
    """
    fields = legacy_fields(row)
    repaired = dict(row)

    if not str(repaired.get("source_text") or "").strip():
        repaired["source_text"] = first_non_empty(fields, SOURCE_TEXT_CANDIDATES)
    if not str(repaired.get("target_text") or "").strip():
        repaired["target_text"] = first_non_empty(fields, TARGET_TEXT_CANDIDATES)
    if not repaired.get("transliteration_text"):
        repaired["transliteration_text"] = first_non_empty(fields, TRANSLIT_CANDIDATES) or None
    if not repaired.get("gloss_text"):
        repaired["gloss_text"] = first_non_empty(fields, GLOSS_CANDIDATES) or None

    position = repaired.get("position")
    if isinstance(position, float) and math.isfinite(position):
        repaired["position"] = int(position)
    elif not isinstance(position, int) or isinstance(position, bool):
        repaired["position"] = None

    if not _valid_token_count(repaired.get("token_count"), allow_zero_tokens):
        repaired["token_count"] = count_tokens(str(repaired.get("target_text") or ""), cjk_mode)
    else:
        repaired["token_count"] = int(repaired["token_count"])
    return repaired


def _position_sort_key(row: Mapping):
    position = row.get("position")
    return (position if isinstance(position, int) else 0, str(row.get("id")))


def assign_sequential_positions(rows: List[Dict], start: int = 0) -> List[Dict]:
    """Give rows lacking a position sequential slots, sorted by id."""
    missing = sorted((row for row in rows if row.get("position") is None), key=lambda r: str(r.get("id")))
    for offset, row in enumerate(missing):
        row["position"] = start + offset
    return missing


def normalize_positions(rows: List[Dict]) -> List[Dict]:
    """Re-number rows to 0..n-1 (by position, then id); returns rows that changed."""
    changed = []
    for index, row in enumerate(sorted(rows, key=_position_sort_key)):
        if row.get("position") != index:
            row["position"] = index
            changed.append(row)
    return changed


def clamp_pointer(value, count: int) -> int:
    if count <= 0:
        return 0
    try:
        value = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, min(value, count - 1))


def normalize_deck_positions(conn, language_id: str, deck_id: str) -> int:
    """Make positions dense for one deck. Returns the deck's sentence count."""
    cursor = conn.cursor()
    cursor.execute(
        "SELECT id, position FROM sentences WHERE language_id = ? AND deck_id = ?",
        (language_id, deck_id),
    )
    rows = [dict(row) for row in cursor.fetchall()]
    changed = normalize_positions(rows)
    if changed:
        logger.debug("Normalized %s positions in deck %s", len(changed), deck_id)
        cursor.executemany(
            "UPDATE sentences SET position = ? WHERE id = ?",
            [(row["position"], row["id"]) for row in changed],
        )
    return len(rows)


def clamp_path_progress(conn, language_id: str, deck_id: str, count: Optional[int] = None, now: Optional[int] = None) -> None:
    """Keep linear_order and srs_new_order inside [0, max(0, count - 1)]."""
    cursor = conn.cursor()
    if count is None:
        cursor.execute(
            "SELECT COUNT(*) FROM sentences WHERE language_id = ? AND deck_id = ?",
            (language_id, deck_id),
        )
        count = int(cursor.fetchone()[0] or 0)
    cursor.execute(
        "SELECT linear_order, srs_new_order FROM path_progress WHERE language_id = ? AND deck_id = ?",
        (language_id, deck_id),
    )
    row = cursor.fetchone()
    if not row:
        return
    linear = clamp_pointer(row["linear_order"], count)
    srs_new = clamp_pointer(row["srs_new_order"], count)
    if linear == row["linear_order"] and srs_new == row["srs_new_order"]:
        return
    if now is None:
        from utils.library import now_ms
        now = now_ms()
    cursor.execute(
        """
        UPDATE path_progress
        SET linear_order = ?, srs_new_order = ?, updated_at = ?
        WHERE language_id = ? AND deck_id = ?
        """,
        (linear, srs_new, now, language_id, deck_id),
    )


def normalize_and_clamp(conn, language_id: str, deck_id: str) -> int:
    count = normalize_deck_positions(conn, language_id, deck_id)
    clamp_path_progress(conn, language_id, deck_id, count)
    return count


def derive_path_progress(language_id: str, deck_id: str, legacy: Optional[Mapping], now: int) -> Dict:
    """Per-path progress seeded from dataset-wide legacy progress, if any."""
    legacy = legacy or {}
    linear_order = int(legacy.get("current_index") or 0)
    return {
        "language_id": language_id,
        "deck_id": deck_id,
        "mode": "linear",
        "linear_order": linear_order,
        "srs_new_order": linear_order,
        "lifetime_reps": int(legacy.get("lifetime_reps") or 0),
        "lifetime_tokens": int(legacy.get("lifetime_tokens") or 0),
        "updated_at": now,
    }


def group_by(rows: Iterable[Dict], *keys: str) -> Dict[tuple, List[Dict]]:
    grouped: Dict[tuple, List[Dict]] = {}
    for row in rows:
        grouped.setdefault(tuple(row.get(key) for key in keys), []).append(row)
    return grouped
