from fastapi import APIRouter, Depends, Form, HTTPException, Query

from db.database import get_db
from models.deck import Deck, DeckCreate
from models.sentence import Sentence
from utils.library import (
    LibraryError,
    create_deck,
    delete_deck,
    get_deck,
    get_language,
    get_sentence_count,
    list_sentences,
    rename_deck,
)

router = APIRouter()


def _require_deck(conn, deck_id: str) -> dict:
    deck = get_deck(conn, deck_id)
    if not deck:
        raise HTTPException(status_code=404, detail="Deck not found")
    return deck


@router.post("/", response_model=Deck, status_code=201)
async def create_new_deck(payload: DeckCreate, conn=Depends(get_db)):
    """Create a deck ("path") inside a language."""
    if not payload.name or not payload.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    if not get_language(conn, payload.language_id):
        raise HTTPException(status_code=404, detail="Language not found")
    return create_deck(conn, payload.language_id, payload.name.strip())


@router.get("/{deck_id}")
async def deck_detail(deck_id: str, conn=Depends(get_db)):
    deck = _require_deck(conn, deck_id)
    return {**deck, "sentence_count": get_sentence_count(conn, deck["language_id"], deck_id)}


@router.post("/{deck_id}/rename", response_model=Deck)
async def rename(deck_id: str, name: str = Form(..., description="Deck name"), conn=Depends(get_db)):
    _require_deck(conn, deck_id)
    try:
        return rename_deck(conn, deck_id, name)
    except LibraryError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.delete("/{deck_id}")
async def remove_deck(deck_id: str, conn=Depends(get_db)):
    _require_deck(conn, deck_id)
    try:
        delete_deck(conn, deck_id)
    except LibraryError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"deleted": deck_id}


@router.get("/{deck_id}/sentences", response_model=list[Sentence])
async def deck_sentences(
    deck_id: str,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    conn=Depends(get_db),
):
    deck = _require_deck(conn, deck_id)
    return list_sentences(conn, deck["language_id"], deck_id, offset, limit)
