from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException

from db.database import get_db
from utils.library import get_deck, get_language
from utils.session import SessionContext
from utils.speech import options_for_language

router = APIRouter()


@router.get("/")
async def current_session(conn=Depends(get_db)):
    """Active language and deck, falling back to the defaults."""
    language, deck = SessionContext.load().resolve(conn)
    return {"language": language, "deck": deck, "speech": vars(options_for_language(language))}


@router.post("/")
async def select_session(
    language_id: str = Form(...),
    deck_id: Optional[str] = Form(None),
    conn=Depends(get_db),
):
    if not get_language(conn, language_id):
        raise HTTPException(status_code=404, detail="Language not found")
    if deck_id:
        deck = get_deck(conn, deck_id)
        if not deck or deck["language_id"] != language_id:
            raise HTTPException(status_code=404, detail="Deck not found")
    language, deck = SessionContext().select(language_id, deck_id).resolve(conn)
    return {"language": language, "deck": deck}
