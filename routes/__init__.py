# Routes package __init__.py - re-exports routers for main.py convenience
from .languages import router as languages_router
from .decks import router as decks_router
from .imports import router as imports_router
from .practice import router as practice_router
from .backups import router as backups_router
from .session import router as session_router

__all__ = ['languages_router', 'decks_router', 'imports_router', 'practice_router', 'backups_router', 'session_router']
