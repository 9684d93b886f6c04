from __future__ import annotations

import logging
from typing import Dict, Optional

from config import load_config
from db.database import bulk_put, transaction
from models.progress import AdvanceResult, CurrentCard, PathProgress, RateResult, SRSState
from models.sentence import Sentence
from utils.library import (
    ensure_path_progress,
    get_language,
    get_sentence_by_order,
    get_sentence_count,
    now_ms,
    record_tokens_seen,
)
from utils.repair import clamp_pointer
from utils.sm2 import SRSUpdate, compute_srs_update, new_srs_state, params_from_config
from utils.tokenize import sentence_side_text, tokenize_text

logger = logging.getLogger(__name__)

STUDY_MODES = ("linear", "srs")


class SchedulerError(ValueError):
    """Raised for requests that do not match the deck (unknown sentence, bad mode)."""


def _srs_settings() -> dict:
    return load_config()["srs"]


def _write_progress(conn, progress: Dict) -> None:
    bulk_put(conn, "path_progress", [progress])


def get_srs_state(conn, language_id: str, deck_id: str, sentence_id: str) -> Optional[Dict]:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT * FROM srs_state
        WHERE language_id = ? AND deck_id = ? AND sentence_id = ?
        """,
        (language_id, deck_id, sentence_id),
    )
    row = cursor.fetchone()
    return dict(row) if row else None


def count_due(conn, language_id: str, deck_id: str, now: int) -> int:
    cursor = conn.cursor()
    cursor.execute(
        "SELECT COUNT(*) FROM srs_state WHERE language_id = ? AND deck_id = ? AND due_at <= ?",
        (language_id, deck_id, now),
    )
    return int(cursor.fetchone()[0] or 0)


def _record_sentence_words(conn, language: Optional[Dict], sentence: Dict) -> int:
    if not language:
        return 0
    text = sentence_side_text(sentence, language.get("token_mode") or "target")
    return record_tokens_seen(conn, language["id"], tokenize_text(text, language["cjk_mode"]))


def set_mode(conn, language_id: str, deck_id: str, mode: str) -> PathProgress:
    """Switch study mode. Pointers are left untouched."""
    if mode not in STUDY_MODES:
        raise SchedulerError(f"Unknown study mode: {mode}")
    with transaction(conn):
        progress = ensure_path_progress(conn, language_id, deck_id)
        progress = {**progress, "mode": mode, "updated_at": now_ms()}
        _write_progress(conn, progress)
    return PathProgress(**progress)


def pick_current(conn, language_id: str, deck_id: str, now: Optional[int] = None) -> CurrentCard:
    """The card to show now for the deck's current mode."""
    now = now if now is not None else now_ms()
    progress = ensure_path_progress(conn, language_id, deck_id)
    count = get_sentence_count(conn, language_id, deck_id)
    if count == 0:
        return CurrentCard(kind="none")
    if progress["mode"] == "srs":
        return _pick_srs(conn, language_id, deck_id, progress, now)
    return _pick_linear(conn, language_id, deck_id, progress, count)


def _pick_linear(conn, language_id: str, deck_id: str, progress: Dict, count: int) -> CurrentCard:
    position = clamp_pointer(progress["linear_order"], count)
    if position != progress["linear_order"]:
        logger.debug("Clamping linear pointer %s -> %s", progress["linear_order"], position)
        with transaction(conn):
            _write_progress(conn, {**progress, "linear_order": position, "updated_at": now_ms()})
    sentence = get_sentence_by_order(conn, language_id, deck_id, position)
    if not sentence:
        return CurrentCard(kind="none")
    return CurrentCard(kind="linear", sentence=Sentence(**sentence))


def _pick_srs(conn, language_id: str, deck_id: str, progress: Dict, now: int) -> CurrentCard:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT st.*
        FROM srs_state st
        JOIN sentences s
          ON s.id = st.sentence_id AND s.language_id = st.language_id AND s.deck_id = st.deck_id
        WHERE st.language_id = ? AND st.deck_id = ? AND st.due_at <= ?
        ORDER BY st.due_at ASC, st.sentence_id ASC
        LIMIT 1
        """,
        (language_id, deck_id, now),
    )
    due = cursor.fetchone()
    due_count = count_due(conn, language_id, deck_id, now)
    if due:
        cursor.execute("SELECT * FROM sentences WHERE id = ?", (due["sentence_id"],))
        sentence = cursor.fetchone()
        return CurrentCard(
            kind="srs",
            sentence=Sentence(**dict(sentence)),
            srs=SRSState(**dict(due)),
            is_new=False,
            due_count=due_count,
        )

    probe = progress["srs_new_order"]
    for _ in range(int(_srs_settings()["new_card_probe_limit"])):
        sentence = get_sentence_by_order(conn, language_id, deck_id, probe)
        if not sentence:
            break
        if not get_srs_state(conn, language_id, deck_id, sentence["id"]):
            pending = new_srs_state(now, params_from_config(_srs_settings()))
            return CurrentCard(
                kind="srs",
                sentence=Sentence(**sentence),
                srs=SRSState(language_id=language_id, deck_id=deck_id, sentence_id=sentence["id"], **vars(pending)),
                is_new=True,
                due_count=due_count,
            )
        probe += 1
    return CurrentCard(kind="none", due_count=due_count)


def advance(conn, language_id: str, deck_id: str, delta: int, counts_as_rep: bool) -> AdvanceResult:
    """Move the linear pointer by delta; a counted rep credits the sentence being left."""
    language = get_language(conn, language_id)
    with transaction(conn):
        progress = ensure_path_progress(conn, language_id, deck_id)
        count = get_sentence_count(conn, language_id, deck_id)
        if count == 0:
            return AdvanceResult(moved=False, progress=PathProgress(**progress))
        current = clamp_pointer(progress["linear_order"], count)
        target = clamp_pointer(current + int(delta), count)
        entered = get_sentence_by_order(conn, language_id, deck_id, target)
        if not entered:
            return AdvanceResult(moved=False, progress=PathProgress(**progress))
        updated = {**progress, "linear_order": target, "updated_at": now_ms()}
        if counts_as_rep:
            left = get_sentence_by_order(conn, language_id, deck_id, current)
            updated["lifetime_reps"] = progress["lifetime_reps"] + 1
            if left:
                updated["lifetime_tokens"] = progress["lifetime_tokens"] + int(left["token_count"] or 0)
                _record_sentence_words(conn, language, left)
            updated["srs_new_order"] = clamp_pointer(max(progress["srs_new_order"], target), count)
        _write_progress(conn, updated)
    return AdvanceResult(moved=True, progress=PathProgress(**updated), sentence=Sentence(**entered))


def rate(conn, language_id: str, deck_id: str, sentence_id: str, grade: str, now: Optional[int] = None) -> RateResult:
    """Grade a card and commit its SRS state together with the path counters."""
    now = now if now is not None else now_ms()
    params = params_from_config(_srs_settings())
    language = get_language(conn, language_id)
    with transaction(conn):
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM sentences WHERE id = ? AND language_id = ? AND deck_id = ?",
            (sentence_id, language_id, deck_id),
        )
        row = cursor.fetchone()
        if not row:
            raise SchedulerError("Sentence not found in this deck")
        sentence = dict(row)
        existing = get_srs_state(conn, language_id, deck_id, sentence_id)
        was_new = existing is None
        if existing:
            prev = SRSUpdate(**{key: existing[key] for key in SRSUpdate.__dataclass_fields__})
        else:
            prev = new_srs_state(now, params)
        update = compute_srs_update(prev, grade, now, params)
        srs = {"language_id": language_id, "deck_id": deck_id, "sentence_id": sentence_id, **vars(update)}
        bulk_put(conn, "srs_state", [srs])

        progress = ensure_path_progress(conn, language_id, deck_id)
        count = get_sentence_count(conn, language_id, deck_id)
        srs_new_order = progress["srs_new_order"] + 1 if was_new else progress["srs_new_order"]
        progress = {
            **progress,
            "srs_new_order": clamp_pointer(srs_new_order, count),
            "lifetime_reps": progress["lifetime_reps"] + 1,
            "lifetime_tokens": progress["lifetime_tokens"] + int(sentence["token_count"] or 0),
            "updated_at": now,
        }
        _write_progress(conn, progress)
        new_words = _record_sentence_words(conn, language, sentence)
    return RateResult(srs=SRSState(**srs), progress=PathProgress(**progress), was_new=was_new, new_words=new_words)
