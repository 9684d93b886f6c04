import io

import pytest
from openpyxl import Workbook

from utils.importers import (
    EmptyImportError,
    MissingColumnsError,
    SheetNotFoundError,
    delete_import_batch,
    import_delimited,
    import_spreadsheet,
    list_import_batches,
    parse_delimited,
    resolve_mapping,
)
from utils.library import create_deck, create_language, ensure_path_progress, get_sentence_count, list_decks, list_sentences
from utils.progress import advance, rate, set_mode


TSV = "english\ttarget\nGood morning\tΚαλημέρα\nThank you\tΕυχαριστώ πολύ\nYes\tΝαι\n"


def _tsv_import(conn, language, deck, text=TSV, mode="append", **kwargs):
    return import_delimited(
        conn,
        language_id=language["id"],
        deck_id=deck["id"],
        filename="phrases.tsv",
        text=text,
        mode=mode,
        **kwargs,
    )


def test_tsv_import_round_trip(conn, language, deck):
    result = _tsv_import(conn, language, deck)
    assert result.imported == 3
    assert result.resolved.source_key == "english"
    assert result.resolved.target_key == "target"

    sentences = list_sentences(conn, language["id"], deck["id"])
    assert [s["position"] for s in sentences] == [0, 1, 2]
    assert [s["token_count"] for s in sentences] == [1, 2, 1]
    assert {s["import_id"] for s in sentences} == {result.import_id}

    batches = list_import_batches(conn, language["id"], deck["id"])
    assert len(batches) == 1
    assert (batches[0]["row_count"], batches[0]["start_order"], batches[0]["end_order"]) == (3, 0, 2)

    advance(conn, language["id"], deck["id"], 2, True)
    assert delete_import_batch(conn, language["id"], deck["id"], result.import_id) == 3
    assert get_sentence_count(conn, language["id"], deck["id"]) == 0
    assert list_import_batches(conn, language["id"], deck["id"]) == []
    progress = ensure_path_progress(conn, language["id"], deck["id"])
    assert (progress["linear_order"], progress["srs_new_order"]) == (0, 0)


def test_append_continues_after_last_position(conn, language, deck):
    _tsv_import(conn, language, deck)
    second = _tsv_import(conn, language, deck, text="english\ttarget\nNo\tΌχι\n")
    batch = next(b for b in list_import_batches(conn, language["id"], deck["id"]) if b["id"] == second.import_id)
    assert (batch["start_order"], batch["end_order"]) == (3, 3)
    positions = [s["position"] for s in list_sentences(conn, language["id"], deck["id"])]
    assert positions == [0, 1, 2, 3]


def test_replace_only_touches_target_deck(conn, language, deck):
    other = create_deck(conn, language["id"], "Travel")
    _tsv_import(conn, language, deck)
    _tsv_import(conn, language, other)
    set_mode(conn, language["id"], deck["id"], "srs")
    first = list_sentences(conn, language["id"], deck["id"])[0]
    rate(conn, language["id"], deck["id"], first["id"], "good")

    result = _tsv_import(conn, language, deck, text="english\ttarget\nNo\tΌχι\n", mode="replace")

    sentences = list_sentences(conn, language["id"], deck["id"])
    assert [(s["target_text"], s["position"]) for s in sentences] == [("Όχι", 0)]
    assert [b["id"] for b in list_import_batches(conn, language["id"], deck["id"])] == [result.import_id]
    assert conn.execute("SELECT COUNT(*) FROM srs_state WHERE deck_id = ?", (deck["id"],)).fetchone()[0] == 0
    assert get_sentence_count(conn, language["id"], other["id"]) == 3
    assert len(list_import_batches(conn, language["id"], other["id"])) == 1


def test_header_inference_finds_descriptive_columns():
    resolved = resolve_mapping(["English Sentence", "Target Language (Greek)", "Word-by-word gloss", "Transliteration"])
    assert resolved.source_key == "english sentence"
    assert resolved.target_key == "target language (greek)"
    assert resolved.gloss_key == "word-by-word gloss"
    assert resolved.translit_key == "transliteration"
    assert resolved.id_key is None


def test_missing_columns_write_nothing(conn, language, deck):
    with pytest.raises(MissingColumnsError) as excinfo:
        _tsv_import(conn, language, deck, text="foo\tbar\n1\t2\n")
    assert "foo, bar" in str(excinfo.value)
    assert get_sentence_count(conn, language["id"], deck["id"]) == 0
    assert list_import_batches(conn, language["id"], deck["id"]) == []


def test_empty_payload_is_rejected(conn, language, deck):
    with pytest.raises(EmptyImportError):
        _tsv_import(conn, language, deck, text="\n\n")


def test_csv_parse_and_token_override(conn, language, deck):
    headers, rows = parse_delimited("English,Target,TokenCount\nHi,Γεια σου,7\n", ",")
    assert headers == ["english", "target", "tokencount"]
    assert rows == [{"english": "Hi", "target": "Γεια σου", "tokencount": "7"}]

    result = import_delimited(
        conn,
        language_id=language["id"],
        deck_id=deck["id"],
        filename="hi.csv",
        text="English,Target,TokenCount\nHi,Γεια σου,7\nBye,Αντίο,\n",
        delimiter=",",
    )
    assert result.imported == 2
    assert [s["token_count"] for s in list_sentences(conn, language["id"], deck["id"])] == [7, 1]


def test_blank_rows_are_skipped(conn, language, deck):
    result = _tsv_import(conn, language, deck, text="english\ttarget\nA\tΑ\n\t\nB\tΒ\n")
    assert result.imported == 2
    assert [s["position"] for s in list_sentences(conn, language["id"], deck["id"])] == [0, 1]


def test_progress_reported_per_batch(conn, language, deck, monkeypatch):
    monkeypatch.setenv("IMPORT_BATCH_SIZE", "2")
    lines = ["english\ttarget"] + [f"row {i}\tγραμμή {i}" for i in range(5)]
    fractions = []
    _tsv_import(conn, language, deck, text="\n".join(lines), on_progress=fractions.append)
    assert fractions == [0.4, 0.8, 1.0, 1.0]


def test_duplicate_ids_in_file_get_fresh_ids(conn, language, deck):
    text = "id\tenglish\ttarget\nx1\tOne\tΈνα\nx1\tTwo\tΔύο\n"
    _tsv_import(conn, language, deck, text=text)
    _tsv_import(conn, language, deck, text=text)
    ids = [s["id"] for s in list_sentences(conn, language["id"], deck["id"])]
    assert len(ids) == len(set(ids)) == 4
    assert ids[0] == "x1"


def _workbook_bytes():
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Basics"
    sheet.append(["English", "Target Language (Greek)", "Gloss"])
    sheet.append(["Good night", "Καληνύχτα", "good-night"])
    sheet.append([None, None, None])
    sheet.append(["Water", "Νερό", None])
    workbook.create_sheet("Empty")
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def test_spreadsheet_import_uses_first_sheet(conn, language, deck):
    result = import_spreadsheet(
        conn,
        language_id=language["id"],
        deck_id=deck["id"],
        filename="basics.xlsx",
        data=_workbook_bytes(),
    )
    assert result.imported == 2
    assert result.sheets == ["Basics", "Empty"]
    sentences = list_sentences(conn, language["id"], deck["id"])
    assert [s["target_text"] for s in sentences] == ["Καληνύχτα", "Νερό"]
    assert sentences[0]["gloss_text"] == "good-night"
    assert sentences[1]["gloss_text"] is None


def test_spreadsheet_unknown_sheet(conn, language, deck):
    with pytest.raises(SheetNotFoundError):
        import_spreadsheet(
            conn,
            language_id=language["id"],
            deck_id=deck["id"],
            filename="basics.xlsx",
            data=_workbook_bytes(),
            sheet_name="Missing",
        )


def test_cjk_import_counts_target_characters(conn):
    japanese = create_language(conn, "Japanese", "ja-JP", cjk_mode=True)
    deck = list_decks(conn, japanese["id"])[0]

    _tsv_import(conn, japanese, deck, text="english\ttarget\nGood morning everyone\tおはよう。\n")

    assert [s["token_count"] for s in list_sentences(conn, japanese["id"], deck["id"])] == [4]
