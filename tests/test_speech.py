import asyncio
import logging

import pytest

from utils.speech import SpeechCoordinator, SpeechOptions, Voice, options_for_language, pick_voice, playback_timeout

OPTIONS = SpeechOptions(language_tag="el-GR")


@pytest.mark.asyncio
async def test_newer_request_supersedes_pending_one():
    spoken = []

    async def speak(text, options):
        spoken.append(text)

    coordinator = SpeechCoordinator(speak)
    first = asyncio.create_task(coordinator.say("ένα", OPTIONS))
    second = asyncio.create_task(coordinator.say("δύο", OPTIONS))

    assert await asyncio.gather(first, second) == [False, True]
    assert spoken == ["δύο"]


@pytest.mark.asyncio
async def test_newer_request_cancels_playing_one():
    spoken = []
    started = asyncio.Event()

    async def speak(text, options):
        spoken.append(text)
        if text == "long":
            started.set()
            await asyncio.sleep(30)

    coordinator = SpeechCoordinator(speak)
    first = asyncio.create_task(coordinator.say("long", OPTIONS))
    await started.wait()

    assert await coordinator.say("short", OPTIONS) is True
    assert await first is False
    assert spoken == ["long", "short"]


@pytest.mark.asyncio
async def test_blank_text_is_ignored():
    calls = []

    async def speak(text, options):
        calls.append(text)

    coordinator = SpeechCoordinator(speak)
    assert await coordinator.say("   ", OPTIONS) is False
    assert calls == []


@pytest.mark.asyncio
async def test_playback_failure_is_logged(caplog):
    async def speak(text, options):
        raise RuntimeError("no voices")

    coordinator = SpeechCoordinator(speak)
    with caplog.at_level(logging.ERROR, logger="utils.speech"):
        assert await coordinator.say("Ναι", OPTIONS) is False
    assert "Speech playback failed" in caplog.text


def test_options_for_language():
    options = options_for_language({"language_tag": "ja-JP", "tts_rate": 0.8, "tts_pitch": 1.1, "preferred_voice_uri": ""})
    assert options == SpeechOptions(language_tag="ja-JP", rate=0.8, pitch=1.1, voice_uri=None)


def test_pick_voice_prefers_uri_then_language():
    voices = [Voice("en-1", "en-US"), Voice("el-1", "el-GR"), Voice("el-2", "el-GR")]
    assert pick_voice(voices, SpeechOptions("el-GR", voice_uri="el-2")).voice_uri == "el-2"
    assert pick_voice(voices, SpeechOptions("el-GR", voice_uri="gone")).voice_uri == "el-1"
    assert pick_voice(voices, SpeechOptions("fr-FR")).voice_uri == "en-1"
    assert pick_voice([], OPTIONS) is None


def test_playback_timeout_bounds():
    assert playback_timeout("hi") == 6.0
    assert playback_timeout("x" * 100) == 16.0
    assert playback_timeout("x" * 1000) == 45.0
