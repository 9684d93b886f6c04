from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from db.database import get_db
from models.deck import Deck
from models.language import Language, LanguageCreate, LanguageUpdate
from utils.library import (
    LibraryError,
    create_language,
    delete_language,
    get_language,
    get_language_stats,
    list_decks,
    list_languages,
    update_language,
)

router = APIRouter()


def _require_language(conn, language_id: str) -> dict:
    language = get_language(conn, language_id)
    if not language:
        raise HTTPException(status_code=404, detail="Language not found")
    return language


@router.get("/", response_model=list[Language])
async def list_all_languages(conn=Depends(get_db)):
    return list_languages(conn)


@router.post("/", response_model=Language, status_code=201)
async def create_new_language(payload: LanguageCreate, conn=Depends(get_db)):
    if not payload.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    settings = payload.model_dump(exclude={"name", "language_tag"})
    return create_language(conn, payload.name, payload.language_tag, **settings)


@router.get("/{language_id}", response_model=Language)
async def language_detail(language_id: str, conn=Depends(get_db)):
    return _require_language(conn, language_id)


@router.patch("/{language_id}", response_model=Language)
async def edit_language(language_id: str, payload: LanguageUpdate, conn=Depends(get_db)):
    _require_language(conn, language_id)
    try:
        return update_language(conn, language_id, **payload.model_dump(exclude_unset=True))
    except LibraryError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.delete("/{language_id}")
async def remove_language(
    language_id: str,
    reassign_to: Optional[str] = Query(default=None, description="Language that receives the sentences"),
    conn=Depends(get_db),
):
    _require_language(conn, language_id)
    try:
        moved = delete_language(conn, language_id, reassign_to)
    except LibraryError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"deleted": language_id, "moved": moved}


@router.get("/{language_id}/decks", response_model=list[Deck])
async def language_decks(language_id: str, conn=Depends(get_db)):
    _require_language(conn, language_id)
    return list_decks(conn, language_id)


@router.get("/{language_id}/stats")
async def language_stats(language_id: str, conn=Depends(get_db)):
    language = _require_language(conn, language_id)
    stats = get_language_stats(conn, language_id)
    goal = language["goal_tokens"] or 1
    return {**stats, "goal_tokens": language["goal_tokens"], "goal_progress": min(1.0, stats["lifetime_tokens"] / goal)}
