from pydantic import BaseModel, Field
from typing import Literal, Optional

RtlMode = Literal["auto", "rtl", "ltr"]
TokenMode = Literal["target", "source", "both"]
Theme = Literal["paper", "desk", "dark"]

class LanguageBase(BaseModel):
    name: str
    language_tag: str = "el-GR"

class LanguageCreate(LanguageBase):
    rtl_mode: RtlMode = "auto"
    token_mode: TokenMode = "target"
    cjk_mode: bool = False
    goal_tokens: Optional[int] = Field(default=None, ge=1)
    theme: Theme = "paper"
    tts_rate: float = Field(default=1.0, gt=0)
    tts_pitch: float = Field(default=1.0, gt=0)
    preferred_voice_uri: Optional[str] = None

class LanguageUpdate(BaseModel):
    name: Optional[str] = None
    language_tag: Optional[str] = None
    rtl_mode: Optional[RtlMode] = None
    token_mode: Optional[TokenMode] = None
    cjk_mode: Optional[bool] = None
    goal_tokens: Optional[int] = Field(default=None, ge=1)
    theme: Optional[Theme] = None
    tts_rate: Optional[float] = Field(default=None, gt=0)
    tts_pitch: Optional[float] = Field(default=None, gt=0)
    preferred_voice_uri: Optional[str] = None

class Language(LanguageBase):
    id: str
    rtl_mode: RtlMode = "auto"
    token_mode: TokenMode = "target"
    cjk_mode: bool = False
    goal_tokens: int = 5_000_000
    theme: Theme = "paper"
    tts_rate: float = 1.0
    tts_pitch: float = 1.0
    preferred_voice_uri: Optional[str] = None
    created_at: int

    class Config:
        from_attributes = True
