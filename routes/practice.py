from fastapi import APIRouter, Depends, Form, HTTPException, Query

from db.database import get_db
from models.progress import AdvanceResult, CurrentCard, Grade, PathProgress, RateResult, StudyMode
from utils.library import get_deck, get_language
from utils.progress import SchedulerError, advance, pick_current, rate, set_mode

router = APIRouter()


def _require_path(conn, language_id: str, deck_id: str) -> None:
    if not get_language(conn, language_id):
        raise HTTPException(status_code=404, detail="Language not found")
    deck = get_deck(conn, deck_id)
    if not deck or deck["language_id"] != language_id:
        raise HTTPException(status_code=404, detail="Deck not found")


@router.get("/{language_id}/{deck_id}/current", response_model=CurrentCard)
async def current_card(language_id: str, deck_id: str, conn=Depends(get_db)):
    _require_path(conn, language_id, deck_id)
    return pick_current(conn, language_id, deck_id)


@router.post("/{language_id}/{deck_id}/advance", response_model=AdvanceResult)
async def advance_linear(
    language_id: str,
    deck_id: str,
    delta: int = Query(default=1, description="Steps to move; negative goes back"),
    counts_as_rep: bool = Query(default=True),
    conn=Depends(get_db),
):
    _require_path(conn, language_id, deck_id)
    return advance(conn, language_id, deck_id, delta, counts_as_rep)


@router.post("/{language_id}/{deck_id}/rate", response_model=RateResult)
async def rate_card(
    language_id: str,
    deck_id: str,
    sentence_id: str = Form(...),
    grade: Grade = Form(...),
    conn=Depends(get_db),
):
    _require_path(conn, language_id, deck_id)
    try:
        return rate(conn, language_id, deck_id, sentence_id, grade.value)
    except SchedulerError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post("/{language_id}/{deck_id}/mode", response_model=PathProgress)
async def switch_mode(language_id: str, deck_id: str, mode: StudyMode = Form(...), conn=Depends(get_db)):
    _require_path(conn, language_id, deck_id)
    try:
        return set_mode(conn, language_id, deck_id, mode)
    except SchedulerError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
