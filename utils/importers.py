from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from config import load_config
from db.database import bulk_put, transaction
from models.sentence import ImportMapping, ImportResult, ResolvedMapping
from utils import spreadsheet
from utils.library import get_language, get_max_position, make_id, now_ms
from utils.repair import clamp_path_progress, normalize_and_clamp
from utils.tokenize import count_sentence_tokens

logger = logging.getLogger(__name__)

DELIMITERS = (",", "\t")
IMPORT_MODES = ("append", "replace")

ProgressCallback = Callable[[float], None]


class ImportError_(ValueError):
    """User-facing import failure; nothing was written."""


class MissingColumnsError(ImportError_):
    def __init__(self, headers: Sequence[str], sheet_name: Optional[str] = None):
        self.headers = list(headers)
        where = f' in sheet "{sheet_name}"' if sheet_name else ""
        found = ", ".join(self.headers) if self.headers else "(none)"
        super().__init__(
            f"Missing required columns{where}. Found headers: {found}.\n\n"
            'Expected at least English + Target (or a header containing "target", like "Target Language (Greek)").'
        )


class EmptyImportError(ImportError_):
    pass


class SheetNotFoundError(ImportError_, LookupError):
    pass


@dataclass(frozen=True)
class HeaderRule:
    equals_any: Tuple[str, ...]
    contains_any: Tuple[str, ...]


SOURCE_RULE = HeaderRule(
    equals_any=("english", "en", "source", "source text", "source sentence", "prompt"),
    contains_any=("english", "source"),
)
TARGET_RULE = HeaderRule(
    equals_any=("target", "target text", "target sentence", "answer", "response"),
    contains_any=("target",),
)
TRANSLIT_RULE = HeaderRule(
    equals_any=("transliteration", "translit", "romanization", "romaji", "pinyin"),
    contains_any=("translit",),
)
GLOSS_RULE = HeaderRule(
    equals_any=("gloss", "word-by-word gloss", "word by word gloss", "wbg"),
    contains_any=("gloss", "word-by-word", "word by word"),
)
TOKEN_RULE = HeaderRule(equals_any=("tokencount", "token count"), contains_any=("token",))
ID_RULE = HeaderRule(equals_any=("id", "uuid"), contains_any=("id",))


def norm_key(key: str) -> str:
    return (key or "").strip().lower()


def parse_delimited(text: str, delimiter: str) -> Tuple[List[str], List[Dict[str, str]]]:
    """Split text on lines and a single delimiter. No quoting support; prefer TSV."""
    if delimiter not in DELIMITERS:
        raise ImportError_("Delimiter must be a comma or a tab")
    lines = [line for line in (text or "").lstrip("\ufeff").splitlines() if line.strip()]
    if not lines:
        return [], []
    headers = [norm_key(header) for header in lines[0].split(delimiter)]
    rows = []
    for line in lines[1:]:
        cols = line.split(delimiter)
        rows.append({header: (cols[i] if i < len(cols) else "").strip() for i, header in enumerate(headers)})
    return headers, rows


def pick_header(headers: Sequence[str], primary_key: Optional[str], rule: HeaderRule) -> Optional[str]:
    """Exact match, then synonyms, then all-hints containment, then any-hint containment."""
    normalized = [norm_key(header) for header in headers]
    available = set(normalized)
    primary = norm_key(primary_key or "")
    if primary and primary in available:
        return primary
    for alias in rule.equals_any:
        if alias in available:
            return alias
    hints = [norm_key(hint) for hint in rule.contains_any]
    if not hints:
        return None
    for header in normalized:
        if all(hint in header for hint in hints):
            return header
    for header in normalized:
        if any(hint in header for hint in hints):
            return header
    return None


def _pick_id_header(headers: Sequence[str], primary_key: Optional[str]) -> Optional[str]:
    # "id" is too short for containment ("video", "valid"), so only whole words count.
    exact = pick_header(headers, primary_key, HeaderRule(ID_RULE.equals_any, ()))
    if exact:
        return exact
    for header in headers:
        words = norm_key(header).replace("_", " ").replace("-", " ").split()
        if "id" in words:
            return norm_key(header)
    return None


def resolve_mapping(headers: Sequence[str], mapping: Optional[ImportMapping] = None) -> ResolvedMapping:
    """Resolve each logical column to an actual header; source and target are required."""
    mapping = mapping or ImportMapping()
    source_key = pick_header(headers, mapping.source_key, SOURCE_RULE)
    target_key = pick_header(headers, mapping.target_key, TARGET_RULE)
    if not source_key or not target_key or source_key == target_key:
        raise MissingColumnsError([norm_key(header) for header in headers])
    return ResolvedMapping(
        source_key=source_key,
        target_key=target_key,
        translit_key=pick_header(headers, mapping.translit_key or "transliteration", TRANSLIT_RULE),
        gloss_key=pick_header(headers, mapping.gloss_key or "gloss", GLOSS_RULE),
        token_key=pick_header(headers, mapping.token_key or "tokencount", TOKEN_RULE),
        id_key=_pick_id_header(headers, mapping.id_key),
    )


def _row_value(row: Dict, key: Optional[str]) -> str:
    if not key:
        return ""
    value = row.get(key)
    if value is None:
        value = row.get(norm_key(key), "")
    return str(value).strip()


def _token_override(raw: str) -> Optional[int]:
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return int(value)


def build_sentence_rows(
    rows: Sequence[Dict],
    resolved: ResolvedMapping,
    language: Dict,
    deck_id: str,
    import_id: str,
    base_order: int,
) -> List[Dict]:
    """Admitted rows as sentence records with consecutive positions from base_order."""
    sentences = []
    for row in rows:
        source_text = _row_value(row, resolved.source_key)
        target_text = _row_value(row, resolved.target_key)
        if not source_text and not target_text:
            continue
        sentence = {
            "id": _row_value(row, resolved.id_key) or make_id("s"),
            "language_id": language["id"],
            "deck_id": deck_id,
            "position": base_order + len(sentences),
            "import_id": import_id,
            "source_text": source_text,
            "target_text": target_text,
            "transliteration_text": _row_value(row, resolved.translit_key) or None,
            "gloss_text": _row_value(row, resolved.gloss_key) or None,
        }
        token_count = _token_override(_row_value(row, resolved.token_key))
        if token_count is None:
            token_count = count_sentence_tokens(sentence, language["cjk_mode"])
        sentence["token_count"] = token_count
        sentences.append(sentence)
    return sentences


def _replace_taken_ids(cursor, sentences: List[Dict], used_ids: set) -> None:
    """Ids from the file must not overwrite stored sentences or repeat within the file."""
    for sentence in sentences:
        cursor.execute("SELECT 1 FROM sentences WHERE id = ?", (sentence["id"],))
        if sentence["id"] in used_ids or cursor.fetchone():
            sentence["id"] = make_id("s")
        used_ids.add(sentence["id"])


def clear_deck(conn, language_id: str, deck_id: str) -> None:
    """Drop a deck's sentences, batches and SRS state and rewind its pointers."""
    with transaction(conn):
        for table in ("sentences", "srs_state", "import_batches"):
            conn.execute(
                f"DELETE FROM {table} WHERE language_id = ? AND deck_id = ?",
                (language_id, deck_id),
            )
        conn.execute(
            """
            UPDATE path_progress
            SET linear_order = 0, srs_new_order = 0, updated_at = ?
            WHERE language_id = ? AND deck_id = ?
            """,
            (now_ms(), language_id, deck_id),
        )


def import_rows(
    conn,
    *,
    language_id: str,
    deck_id: str,
    filename: str,
    headers: Sequence[str],
    rows: Sequence[Dict],
    mapping: Optional[ImportMapping] = None,
    mode: str = "append",
    on_progress: Optional[ProgressCallback] = None,
    sheet_name: Optional[str] = None,
) -> ImportResult:
    """Commit parsed rows as one import batch inside a single transaction."""
    if mode not in IMPORT_MODES:
        raise ImportError_(f"Unknown import mode: {mode}")
    if not headers:
        raise EmptyImportError("The file has no rows to import")
    language = get_language(conn, language_id)
    if not language:
        raise ImportError_("Language not found")
    try:
        resolved = resolve_mapping(headers, mapping)
    except MissingColumnsError as exc:
        raise MissingColumnsError(exc.headers, sheet_name) from None

    batch_size = max(1, int(load_config()["import"]["batch_size"]))
    import_id = make_id("imp")
    created_at = now_ms()
    total = max(1, len(rows))

    with transaction(conn):
        cursor = conn.cursor()
        cursor.execute("SELECT 1 FROM decks WHERE id = ? AND language_id = ?", (deck_id, language_id))
        if not cursor.fetchone():
            raise ImportError_("Deck not found")
        if mode == "replace":
            clear_deck(conn, language_id, deck_id)
        base_order = 0 if mode == "replace" else get_max_position(conn, language_id, deck_id) + 1

        inserted = 0
        used_ids: set = set()
        for start in range(0, len(rows), batch_size):
            chunk = rows[start:start + batch_size]
            sentences = build_sentence_rows(chunk, resolved, language, deck_id, import_id, base_order + inserted)
            _replace_taken_ids(cursor, sentences, used_ids)
            bulk_put(conn, "sentences", sentences)
            inserted += len(sentences)
            if on_progress:
                on_progress(min(1.0, (start + len(chunk)) / total))

        bulk_put(conn, "import_batches", [{
            "id": import_id,
            "language_id": language_id,
            "deck_id": deck_id,
            "filename": filename,
            "created_at": created_at,
            "mode": mode,
            "start_order": base_order,
            "end_order": max(base_order - 1, base_order + inserted - 1),
            "row_count": inserted,
        }])
        clamp_path_progress(conn, language_id, deck_id)

    if on_progress:
        on_progress(1.0)
    logger.info("Imported %s rows from %s into deck %s (%s)", inserted, filename, deck_id, mode)
    return ImportResult(import_id=import_id, imported=inserted, headers=list(headers), resolved=resolved)


def import_delimited(
    conn,
    *,
    language_id: str,
    deck_id: str,
    filename: str,
    text: str,
    delimiter: str = "\t",
    mapping: Optional[ImportMapping] = None,
    mode: str = "append",
    on_progress: Optional[ProgressCallback] = None,
) -> ImportResult:
    headers, rows = parse_delimited(text, delimiter)
    return import_rows(
        conn,
        language_id=language_id,
        deck_id=deck_id,
        filename=filename,
        headers=headers,
        rows=rows,
        mapping=mapping,
        mode=mode,
        on_progress=on_progress,
    )


def import_spreadsheet(
    conn,
    *,
    language_id: str,
    deck_id: str,
    filename: str,
    data: bytes,
    sheet_name: Optional[str] = None,
    mapping: Optional[ImportMapping] = None,
    mode: str = "append",
    on_progress: Optional[ProgressCallback] = None,
) -> ImportResult:
    try:
        sheets = spreadsheet.list_sheets(data)
    except spreadsheet.UnreadableWorkbookError as exc:
        raise ImportError_(str(exc)) from exc
    if not sheets:
        raise EmptyImportError("The workbook has no sheets")
    sheet_name = sheet_name or sheets[0]
    if sheet_name not in sheets:
        raise SheetNotFoundError(f'Sheet "{sheet_name}" not found.')
    raw_rows = spreadsheet.read_sheet(data, sheet_name)
    rows = [{norm_key(key): value for key, value in row.items()} for row in raw_rows]
    headers = list(rows[0].keys()) if rows else []
    result = import_rows(
        conn,
        language_id=language_id,
        deck_id=deck_id,
        filename=filename,
        headers=headers,
        rows=rows,
        mapping=mapping,
        mode=mode,
        on_progress=on_progress,
        sheet_name=sheet_name,
    )
    result.sheets = sheets
    return result


def list_import_batches(conn, language_id: str, deck_id: str) -> List[Dict]:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT * FROM import_batches
        WHERE language_id = ? AND deck_id = ?
        ORDER BY created_at DESC, id
        """,
        (language_id, deck_id),
    )
    return [dict(row) for row in cursor.fetchall()]


def delete_import_batch(conn, language_id: str, deck_id: str, import_id: str) -> int:
    """Remove one batch's sentences and SRS rows, then re-densify the deck."""
    with transaction(conn):
        cursor = conn.cursor()
        cursor.execute(
            "SELECT id FROM sentences WHERE language_id = ? AND deck_id = ? AND import_id = ?",
            (language_id, deck_id, import_id),
        )
        ids = [row[0] for row in cursor.fetchall()]
        if ids:
            cursor.executemany(
                "DELETE FROM srs_state WHERE language_id = ? AND deck_id = ? AND sentence_id = ?",
                [(language_id, deck_id, sentence_id) for sentence_id in ids],
            )
            cursor.executemany("DELETE FROM sentences WHERE id = ?", [(sentence_id,) for sentence_id in ids])
        cursor.execute(
            "DELETE FROM import_batches WHERE id = ? AND language_id = ? AND deck_id = ?",
            (import_id, language_id, deck_id),
        )
        normalize_and_clamp(conn, language_id, deck_id)
    logger.info("Deleted import %s (%s sentences)", import_id, len(ids))
    return len(ids)
