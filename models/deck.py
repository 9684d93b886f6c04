from pydantic import BaseModel

class DeckBase(BaseModel):
    name: str

class DeckCreate(DeckBase):
    language_id: str

class Deck(DeckBase):
    id: str
    language_id: str
    created_at: int

    class Config:
        from_attributes = True
