from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from config import load_config
from db.database import get_db
from models.sentence import ImportBatch, ImportMapping, ImportResult
from utils.importers import (
    ImportError_,
    SheetNotFoundError,
    delete_import_batch,
    import_delimited,
    import_spreadsheet,
    list_import_batches,
)
from utils.library import get_deck

router = APIRouter()

SPREADSHEET_SUFFIXES = (".xlsx", ".xlsm")


def _require_deck(conn, language_id: str, deck_id: str) -> dict:
    deck = get_deck(conn, deck_id)
    if not deck or deck["language_id"] != language_id:
        raise HTTPException(status_code=404, detail="Deck not found")
    return deck


def _delimiter_for(filename: str, requested: Optional[str]) -> str:
    if requested:
        return "\t" if requested in ("tab", "\\t", "\t") else requested
    if filename.lower().endswith(".csv"):
        return ","
    if filename.lower().endswith((".tsv", ".tab")):
        return "\t"
    return load_config()["import"]["default_delimiter"]


@router.post("/", response_model=ImportResult)
async def upload_import(
    file: UploadFile = File(..., description="CSV, TSV or XLSX file"),
    language_id: str = Form(...),
    deck_id: str = Form(...),
    mode: str = Form("append", description="append or replace"),
    delimiter: Optional[str] = Form(None, description="',' or 'tab'; inferred from the extension"),
    sheet_name: Optional[str] = Form(None),
    source_key: str = Form("english"),
    target_key: str = Form("target"),
    conn=Depends(get_db),
):
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    _require_deck(conn, language_id, deck_id)
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="File is empty")
    mapping = ImportMapping(source_key=source_key, target_key=target_key)
    try:
        if file.filename.lower().endswith(SPREADSHEET_SUFFIXES):
            return import_spreadsheet(
                conn,
                language_id=language_id,
                deck_id=deck_id,
                filename=file.filename,
                data=data,
                sheet_name=sheet_name,
                mapping=mapping,
                mode=mode,
            )
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise HTTPException(status_code=400, detail="File must be UTF-8 text")
        return import_delimited(
            conn,
            language_id=language_id,
            deck_id=deck_id,
            filename=file.filename,
            text=text,
            delimiter=_delimiter_for(file.filename, delimiter),
            mapping=mapping,
            mode=mode,
        )
    except SheetNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ImportError_ as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/{language_id}/{deck_id}", response_model=list[ImportBatch])
async def import_history(language_id: str, deck_id: str, conn=Depends(get_db)):
    _require_deck(conn, language_id, deck_id)
    return list_import_batches(conn, language_id, deck_id)


@router.delete("/{language_id}/{deck_id}/{import_id}")
async def undo_import(language_id: str, deck_id: str, import_id: str, conn=Depends(get_db)):
    _require_deck(conn, language_id, deck_id)
    deleted = delete_import_batch(conn, language_id, deck_id, import_id)
    return {"import_id": import_id, "deleted": deleted}
