from pydantic import BaseModel
from typing import Literal, Optional
from enum import Enum

from .sentence import Sentence

StudyMode = Literal["linear", "srs"]

class Grade(str, Enum):
    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"

class PathProgress(BaseModel):
    language_id: str
    deck_id: str
    mode: StudyMode = "linear"
    linear_order: int = 0
    srs_new_order: int = 0
    lifetime_reps: int = 0
    lifetime_tokens: int = 0
    updated_at: int = 0

    class Config:
        from_attributes = True

class SRSState(BaseModel):
    language_id: str
    deck_id: str
    sentence_id: str
    due_at: int
    reps: int = 0
    lapses: int = 0
    interval_days: int = 0
    ease: float = 2.5
    updated_at: int = 0

    class Config:
        from_attributes = True

class CurrentCard(BaseModel):
    """What the learner should see next. kind == "none" means the deck has nothing to show."""
    kind: Literal["none", "linear", "srs"]
    sentence: Optional[Sentence] = None
    srs: Optional[SRSState] = None
    is_new: bool = False
    due_count: int = 0

class AdvanceResult(BaseModel):
    moved: bool
    progress: Optional[PathProgress] = None
    sentence: Optional[Sentence] = None

class RateResult(BaseModel):
    srs: SRSState
    progress: PathProgress
    was_new: bool
    new_words: int = 0
