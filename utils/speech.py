from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpeechOptions:
    language_tag: str
    rate: float = 1.0
    pitch: float = 1.0
    voice_uri: Optional[str] = None


@dataclass(frozen=True)
class Voice:
    voice_uri: str
    lang: str
    name: str = ""


SpeakFn = Callable[[str, SpeechOptions], Awaitable[None]]


def options_for_language(language: Dict) -> SpeechOptions:
    return SpeechOptions(
        language_tag=language.get("language_tag") or "el-GR",
        rate=float(language.get("tts_rate") or 1.0),
        pitch=float(language.get("tts_pitch") or 1.0),
        voice_uri=language.get("preferred_voice_uri") or None,
    )


def pick_voice(voices: Sequence[Voice], options: SpeechOptions) -> Optional[Voice]:
    """Preferred voice, else the first matching the language tag, else any voice."""
    if not voices:
        return None
    if options.voice_uri:
        for voice in voices:
            if voice.voice_uri == options.voice_uri:
                return voice
    prefix = options.language_tag.lower()
    for voice in voices:
        if (voice.lang or "").lower().startswith(prefix):
            return voice
    return voices[0]


def playback_timeout(text: str) -> float:
    """Seconds to wait for an engine that never reports completion."""
    return max(6.0, min(45.0, math.ceil(len(text) * 160) / 1000))


class SpeechCoordinator:
    """Plays at most one utterance at a time; a newer request supersedes older ones."""

    def __init__(self, speak: SpeakFn):
        self._speak = speak
        self._generation = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def generation(self) -> int:
        return self._generation

    async def say(self, text: str, options: SpeechOptions) -> bool:
        """Speak text; returns False when blank, superseded or failed."""
        self._generation += 1
        generation = self._generation
        self.stop()
        if not (text or "").strip():
            return False
        # Let a burst of requests settle so only the last one starts.
        await asyncio.sleep(0)
        if generation != self._generation:
            return False
        self._task = asyncio.create_task(self._speak(text, options))
        try:
            await asyncio.wait_for(self._task, timeout=playback_timeout(text))
        except asyncio.TimeoutError:
            logger.warning("Speech playback did not finish within %.1fs", playback_timeout(text))
            return False
        except asyncio.CancelledError:
            if generation != self._generation:
                return False
            raise
        except Exception:
            logger.exception("Speech playback failed")
            return False
        return generation == self._generation

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
