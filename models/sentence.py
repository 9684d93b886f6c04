from pydantic import BaseModel
from typing import Literal, Optional

ImportMode = Literal["append", "replace"]

class Sentence(BaseModel):
    id: str
    language_id: str
    deck_id: str
    position: int
    import_id: str
    source_text: str
    target_text: str
    transliteration_text: Optional[str] = None
    gloss_text: Optional[str] = None
    token_count: int

    class Config:
        from_attributes = True

class ImportBatch(BaseModel):
    id: str
    language_id: str
    deck_id: str
    filename: str
    created_at: int
    mode: ImportMode
    start_order: int
    end_order: int
    row_count: int

    class Config:
        from_attributes = True

class ImportMapping(BaseModel):
    """Preferred header for each logical column; resolution falls back to synonyms."""
    source_key: str = "english"
    target_key: str = "target"
    translit_key: Optional[str] = None
    gloss_key: Optional[str] = None
    token_key: Optional[str] = None
    id_key: Optional[str] = None

class ResolvedMapping(BaseModel):
    source_key: str
    target_key: str
    translit_key: Optional[str] = None
    gloss_key: Optional[str] = None
    token_key: Optional[str] = None
    id_key: Optional[str] = None

class ImportResult(BaseModel):
    import_id: str
    imported: int
    headers: list[str]
    resolved: ResolvedMapping
    sheets: Optional[list[str]] = None
