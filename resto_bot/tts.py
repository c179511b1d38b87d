# resto_bot/tts.py
"""
Text-to-Speech provider abstraction layer.

Reads assistant replies aloud on the table device. Providers:

- ElevenLabs (default): multilingual turbo model, a voice that handles
  Indonesian well
- OpenAI TTS

Usage:
    from resto_bot.tts import get_tts_provider

    provider = get_tts_provider()
    audio_bytes = await provider.synthesize("Selamat datang!")

Missing credentials raise UpstreamUnavailable; provider errors raise
UpstreamFailed. Raw provider text is logged only.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

import aiohttp
import openai
from openai import AsyncOpenAI

from . import config
from .errors import UpstreamFailed, UpstreamUnavailable

logger = logging.getLogger(__name__)


class TTSProvider(str, Enum):
    """Supported TTS providers."""
    OPENAI = "openai"
    ELEVENLABS = "elevenlabs"


@dataclass
class Voice:
    """Represents a TTS voice option."""
    id: str
    name: str
    gender: Optional[str] = None
    description: Optional[str] = None


class BaseTTSProvider(ABC):
    """Abstract base class for TTS providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for display."""

    @property
    @abstractmethod
    def voices(self) -> List[Voice]:
        """List of available voices."""

    @abstractmethod
    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> bytes:
        """
        Synthesize text to speech.

        Returns:
            Audio data as bytes (MP3 format)
        """


class ElevenLabsTTSProvider(BaseTTSProvider):
    """ElevenLabs Text-to-Speech provider."""

    API_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
    MODEL_ID = "eleven_turbo_v2_5"
    OUTPUT_FORMAT = "mp3_44100_128"
    VOICE_SETTINGS = {
        "stability": 0.5,
        "similarity_boost": 0.75,
        "style": 0.3,
        "use_speaker_boost": True,
        "speed": 1.1,
    }

    VOICES = [
        Voice("CwhRBWXzGAHq8TQ4Fs17", "Roger", "male", "Casual, good for Indonesian"),
        Voice("EXAVITQu4vr4xnSDxMaL", "Sarah", "female", "Soft and warm"),
    ]

    def __init__(self, api_key: Optional[str] = None, timeout: float = 30.0):
        self.api_key = api_key or config.ELEVENLABS_API_KEY
        if not self.api_key:
            raise UpstreamUnavailable("ELEVENLABS_API_KEY not configured")
        self.default_voice = config.ELEVENLABS_DEFAULT_VOICE
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "ElevenLabs"

    @property
    def voices(self) -> List[Voice]:
        return self.VOICES

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> bytes:
        voice = voice_id or self.default_voice
        url = self.API_URL.format(voice_id=voice)
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self.api_key,
        }
        payload = {
            "text": text,
            "model_id": self.MODEL_ID,
            "voice_settings": self.VOICE_SETTINGS,
        }

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(
                    url,
                    json=payload,
                    headers=headers,
                    params={"output_format": self.OUTPUT_FORMAT},
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error("ElevenLabs API error %s: %s", response.status, error_text[:200])
                        raise UpstreamFailed(f"ElevenLabs status {response.status}")
                    audio = await response.read()
        except aiohttp.ClientError as exc:
            logger.error("ElevenLabs request failed: %s", exc)
            raise UpstreamFailed(f"ElevenLabs request failed: {exc}") from exc

        logger.debug("Generated %d bytes of audio", len(audio))
        return audio


class OpenAITTSProvider(BaseTTSProvider):
    """OpenAI Text-to-Speech provider."""

    VOICES = [
        Voice("nova", "Nova", "female", "Friendly and upbeat"),
        Voice("alloy", "Alloy", "neutral", "Neutral and balanced"),
        Voice("echo", "Echo", "male", "Warm and confident"),
        Voice("shimmer", "Shimmer", "female", "Clear and pleasant"),
    ]

    def __init__(self, api_key: Optional[str] = None, model: str = "tts-1"):
        self.api_key = api_key or config.OPENAI_API_KEY
        if not self.api_key:
            raise UpstreamUnavailable("OPENAI_API_KEY not configured")
        self.model = model
        self.default_voice = "nova"
        self.client = AsyncOpenAI(api_key=self.api_key)

    @property
    def name(self) -> str:
        return "OpenAI"

    @property
    def voices(self) -> List[Voice]:
        return self.VOICES

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> bytes:
        voice = voice_id or self.default_voice
        if voice not in {v.id for v in self.VOICES}:
            logger.warning("Invalid voice '%s', using default '%s'", voice, self.default_voice)
            voice = self.default_voice

        try:
            response = await self.client.audio.speech.create(
                model=self.model,
                voice=voice,
                input=text,
                response_format="mp3",
            )
        except openai.OpenAIError as exc:
            logger.error("OpenAI TTS failed: %s", exc)
            raise UpstreamFailed(f"OpenAI TTS failed: {exc}") from exc

        return response.content


_PROVIDERS = {
    TTSProvider.OPENAI: OpenAITTSProvider,
    TTSProvider.ELEVENLABS: ElevenLabsTTSProvider,
}

_provider_instances: Dict[TTSProvider, BaseTTSProvider] = {}


def get_tts_provider(provider_type: Optional[TTSProvider] = None) -> BaseTTSProvider:
    """
    Get the configured TTS provider, created once per provider type.

    Raises:
        UpstreamUnavailable: the provider has no credentials
    """
    if provider_type is None:
        try:
            provider_type = TTSProvider(config.TTS_PROVIDER.lower())
        except ValueError:
            logger.warning("Unknown TTS provider '%s', defaulting to ElevenLabs", config.TTS_PROVIDER)
            provider_type = TTSProvider.ELEVENLABS

    provider = _provider_instances.get(provider_type)
    if provider is None:
        provider = _PROVIDERS[provider_type]()
        _provider_instances[provider_type] = provider
        logger.info("Initialized TTS provider: %s", provider.name)
    return provider


def reset_tts_providers() -> None:
    _provider_instances.clear()
