from .language import Language, LanguageCreate, LanguageUpdate
from .deck import Deck, DeckCreate
from .sentence import Sentence, ImportBatch, ImportMapping, ImportResult, ResolvedMapping
from .progress import Grade, PathProgress, SRSState, CurrentCard, AdvanceResult, RateResult

__all__ = [
    'Language', 'LanguageCreate', 'LanguageUpdate', 'Deck', 'DeckCreate',
    'Sentence', 'ImportBatch', 'ImportMapping', 'ImportResult', 'ResolvedMapping',
    'Grade', 'PathProgress', 'SRSState', 'CurrentCard', 'AdvanceResult', 'RateResult',
]
