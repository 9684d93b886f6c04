from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from config import load_config, set_session_selection
from utils.library import ensure_default_deck, ensure_default_language, get_deck, get_language

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """The language and deck the user last worked in, persisted in config.toml."""

    language_id: Optional[str] = None
    deck_id: Optional[str] = None

    @classmethod
    def load(cls) -> "SessionContext":
        session_cfg = load_config()["session"]
        return cls(language_id=session_cfg["language_id"], deck_id=session_cfg["deck_id"])

    def select(self, language_id: str, deck_id: Optional[str] = None) -> "SessionContext":
        set_session_selection(language_id, deck_id)
        self.language_id = language_id
        self.deck_id = deck_id
        return self

    def resolve(self, conn) -> Tuple[Dict, Dict]:
        """Stored language/deck, falling back to defaults when they no longer exist."""
        language = get_language(conn, self.language_id) if self.language_id else None
        if not language:
            language = ensure_default_language(conn)
        deck = get_deck(conn, self.deck_id) if self.deck_id else None
        if not deck or deck["language_id"] != language["id"]:
            deck = ensure_default_deck(conn, language["id"])
        if (language["id"], deck["id"]) != (self.language_id, self.deck_id):
            logger.debug("Session resolved to %s/%s", language["id"], deck["id"])
            self.select(language["id"], deck["id"])
        return language, deck
