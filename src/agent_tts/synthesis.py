"""
Speech synthesis providers.

Every provider implements synthesize(text) -> SynthesisResult. Providers are
built from a profile's TTSConfig by SynthesizerFactory, which keeps one
instance per profile until the configuration changes.
"""

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx
from openai import APIConnectionError, APIStatusError, OpenAI, OpenAIError

from agent_tts.exceptions import SynthesisError
from agent_tts.profiles import ProfileConfig, TTSConfig

logger = logging.getLogger(__name__)

OPENAI_DEFAULT_VOICE = "alloy"
OPENAI_DEFAULT_MODEL = "tts-1"

KOKORO_DEFAULT_BASE_URL = "http://localhost:8880/v1"
KOKORO_DEFAULT_VOICE = "af_bella"
KOKORO_DEFAULT_MODEL = "kokoro"

ELEVENLABS_BASE_URL = "https://api.elevenlabs.io"
ELEVENLABS_DEFAULT_VOICE = "EXAVITQu4vr4xnSDxMaL"
ELEVENLABS_DEFAULT_MODEL = "eleven_turbo_v2_5"


@dataclass
class SynthesisResult:
    """Synthesized audio and its container format (file extension)."""

    audio: bytes
    format: str = "mp3"


class Synthesizer(Protocol):
    """Text in, audio bytes out."""

    def synthesize(self, text: str) -> SynthesisResult:
        """
        Raises:
            SynthesisError: If the provider fails to return audio
        """
        ...


class OpenAISynthesizer:
    """OpenAI speech endpoint via the official SDK."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        voice: str = OPENAI_DEFAULT_VOICE,
        model: str = OPENAI_DEFAULT_MODEL,
        response_format: str = "mp3",
        speed: Optional[float] = None,
        base_url: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        self.voice = voice
        self.model = model
        self.response_format = response_format
        self.speed = speed
        if client is None:
            try:
                client = OpenAI(api_key=api_key or os.getenv("OPENAI_API_KEY"), base_url=base_url)
            except OpenAIError as e:
                raise SynthesisError(f"Cannot create OpenAI client: {e}") from e
        self.client = client
        logger.info(f"Initialized {type(self).__name__} (model={model}, voice={voice})")

    def synthesize(self, text: str) -> SynthesisResult:
        params: dict[str, Any] = {
            "model": self.model,
            "voice": self.voice,
            "input": text,
            "response_format": self.response_format,
        }
        if self.speed is not None:
            params["speed"] = self.speed

        try:
            response = self.client.audio.speech.create(**params)
        except APIStatusError as e:
            raise SynthesisError(f"Speech request failed: {e.message}", e.status_code) from e
        except APIConnectionError as e:
            raise SynthesisError(f"Cannot reach speech endpoint: {e}") from e
        except OpenAIError as e:
            raise SynthesisError(f"Speech request failed: {e}") from e

        audio = response.content
        if not audio:
            raise SynthesisError("Speech endpoint returned no audio")
        return SynthesisResult(audio=audio, format=self.response_format)


class KokoroSynthesizer(OpenAISynthesizer):
    """Local Kokoro server speaking the OpenAI-compatible speech API."""

    def __init__(
        self,
        base_url: str = KOKORO_DEFAULT_BASE_URL,
        voice: str = KOKORO_DEFAULT_VOICE,
        model: str = KOKORO_DEFAULT_MODEL,
        response_format: str = "mp3",
        speed: Optional[float] = 1.0,
        api_key: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        # Kokoro ignores the key but the SDK requires one
        super().__init__(
            api_key=api_key or "not-needed",
            voice=voice,
            model=model,
            response_format=response_format,
            speed=speed,
            base_url=base_url,
            client=client,
        )


class ElevenLabsSynthesizer:
    """ElevenLabs text-to-speech REST API via httpx."""

    def __init__(
        self,
        api_key: Optional[str],
        voice_id: str = ELEVENLABS_DEFAULT_VOICE,
        model: str = ELEVENLABS_DEFAULT_MODEL,
        stability: float = 0.5,
        similarity_boost: float = 0.75,
        base_url: str = ELEVENLABS_BASE_URL,
        timeout: float = 60.0,
        client: Optional[httpx.Client] = None,
    ):
        api_key = api_key or os.getenv("ELEVENLABS_API_KEY")
        if not api_key:
            raise SynthesisError("ElevenLabs API key is required")
        self.voice_id = voice_id
        self.model = model
        self.stability = stability
        self.similarity_boost = similarity_boost
        self._client = client or httpx.Client(
            base_url=base_url,
            headers={"xi-api-key": api_key, "Accept": "audio/mpeg"},
            timeout=timeout,
        )
        logger.info(f"Initialized ElevenLabsSynthesizer (model={model}, voice={voice_id})")

    def close(self) -> None:
        self._client.close()

    def synthesize(self, text: str) -> SynthesisResult:
        payload = {
            "text": text,
            "model_id": self.model,
            "voice_settings": {
                "stability": self.stability,
                "similarity_boost": self.similarity_boost,
            },
        }
        try:
            response = self._client.post(f"/v1/text-to-speech/{self.voice_id}", json=payload)
        except httpx.HTTPError as e:
            raise SynthesisError(f"Cannot reach ElevenLabs: {e}") from e

        if response.status_code >= 400:
            raise SynthesisError(
                f"ElevenLabs returned {response.status_code}: {response.text[:200]}",
                response.status_code,
            )
        if not response.content:
            raise SynthesisError("ElevenLabs returned no audio", response.status_code)
        return SynthesisResult(audio=response.content, format="mp3")


def create_synthesizer(config: TTSConfig) -> Synthesizer:
    """
    Build a provider from configuration.

    Raises:
        SynthesisError: If the provider cannot be configured
    """
    options = config.options
    if config.type == "openai":
        return OpenAISynthesizer(
            api_key=config.api_key,
            voice=config.voice_id or OPENAI_DEFAULT_VOICE,
            model=config.model or OPENAI_DEFAULT_MODEL,
            response_format=config.response_format or "mp3",
            speed=config.speed,
            base_url=config.base_url,
        )
    if config.type == "kokoro":
        return KokoroSynthesizer(
            base_url=config.base_url or KOKORO_DEFAULT_BASE_URL,
            voice=config.voice_id or KOKORO_DEFAULT_VOICE,
            model=config.model or KOKORO_DEFAULT_MODEL,
            response_format=config.response_format or "mp3",
            speed=config.speed if config.speed is not None else 1.0,
            api_key=config.api_key,
        )
    if config.type == "elevenlabs":
        return ElevenLabsSynthesizer(
            api_key=config.api_key,
            voice_id=config.voice_id or ELEVENLABS_DEFAULT_VOICE,
            model=config.model or ELEVENLABS_DEFAULT_MODEL,
            stability=options.get("stability", 0.5),
            similarity_boost=options.get("similarity_boost", options.get("similarityBoost", 0.75)),
            base_url=config.base_url or ELEVENLABS_BASE_URL,
        )
    raise SynthesisError(f"Unsupported TTS type: {config.type}")


class SynthesizerFactory:
    """One synthesizer per profile, rebuilt after clear()."""

    def __init__(self, builder=create_synthesizer):
        self._builder = builder
        self._cache: dict[str, Synthesizer] = {}
        self._lock = threading.Lock()

    def get(self, profile: ProfileConfig) -> Synthesizer:
        with self._lock:
            synthesizer = self._cache.get(profile.id)
            if synthesizer is None:
                synthesizer = self._builder(profile.tts)
                self._cache[profile.id] = synthesizer
            return synthesizer

    def clear(self) -> None:
        with self._lock:
            for synthesizer in self._cache.values():
                close = getattr(synthesizer, "close", None)
                if callable(close):
                    close()
            self._cache.clear()
        logger.debug("Cleared cached synthesizers")
