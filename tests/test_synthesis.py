"""
Tests for the speech synthesis providers.
"""

import json
from unittest.mock import MagicMock

import httpx
import pytest
from openai import APIConnectionError, APIStatusError

from agent_tts.exceptions import SynthesisError
from agent_tts.profiles import TTSConfig
from agent_tts.synthesis import (
    ElevenLabsSynthesizer,
    KokoroSynthesizer,
    OpenAISynthesizer,
    SynthesizerFactory,
    create_synthesizer,
)

from conftest import make_profile


def _openai_client(content: bytes = b"mp3-bytes") -> MagicMock:
    client = MagicMock()
    client.audio.speech.create.return_value = MagicMock(content=content)
    return client


class TestOpenAISynthesizer:
    def test_synthesize(self):
        client = _openai_client()
        synth = OpenAISynthesizer(voice="nova", model="tts-1-hd", speed=1.25, client=client)

        result = synth.synthesize("Hello")

        assert result.audio == b"mp3-bytes"
        assert result.format == "mp3"
        client.audio.speech.create.assert_called_once_with(
            model="tts-1-hd", voice="nova", input="Hello", response_format="mp3", speed=1.25
        )

    def test_speed_omitted_when_unset(self):
        client = _openai_client()
        OpenAISynthesizer(client=client).synthesize("Hi")
        assert "speed" not in client.audio.speech.create.call_args.kwargs

    def test_status_error_mapped(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/audio/speech")
        response = httpx.Response(429, request=request)
        client = MagicMock()
        client.audio.speech.create.side_effect = APIStatusError(
            "Rate limit reached", response=response, body=None
        )

        with pytest.raises(SynthesisError) as exc_info:
            OpenAISynthesizer(client=client).synthesize("Hi")

        assert exc_info.value.status_code == 429

    def test_connection_error_mapped(self):
        client = MagicMock()
        client.audio.speech.create.side_effect = APIConnectionError(
            request=httpx.Request("POST", "http://localhost:8880/v1/audio/speech")
        )

        with pytest.raises(SynthesisError) as exc_info:
            OpenAISynthesizer(client=client).synthesize("Hi")

        assert exc_info.value.status_code is None

    def test_empty_audio_rejected(self):
        with pytest.raises(SynthesisError):
            OpenAISynthesizer(client=_openai_client(b"")).synthesize("Hi")

    def test_kokoro_defaults(self):
        synth = KokoroSynthesizer(client=_openai_client())
        assert synth.voice == "af_bella"
        assert synth.model == "kokoro"
        assert synth.speed == 1.0


class TestElevenLabsSynthesizer:
    def _client(self, handler) -> httpx.Client:
        return httpx.Client(base_url="https://api.elevenlabs.io", transport=httpx.MockTransport(handler))

    def test_synthesize(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=b"eleven-audio")

        synth = ElevenLabsSynthesizer(
            api_key="key", voice_id="voice123", stability=0.3, client=self._client(handler)
        )
        result = synth.synthesize("Hello there")

        assert result.audio == b"eleven-audio"
        assert seen["path"] == "/v1/text-to-speech/voice123"
        assert seen["body"]["text"] == "Hello there"
        assert seen["body"]["model_id"] == "eleven_turbo_v2_5"
        assert seen["body"]["voice_settings"] == {"stability": 0.3, "similarity_boost": 0.75}

    def test_http_error_mapped(self):
        def handler(request):
            return httpx.Response(401, text="invalid api key")

        synth = ElevenLabsSynthesizer(api_key="key", client=self._client(handler))
        with pytest.raises(SynthesisError) as exc_info:
            synth.synthesize("Hi")

        assert exc_info.value.status_code == 401
        assert "invalid api key" in str(exc_info.value)

    def test_transport_error_mapped(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        synth = ElevenLabsSynthesizer(api_key="key", client=self._client(handler))
        with pytest.raises(SynthesisError):
            synth.synthesize("Hi")

    def test_api_key_required(self, monkeypatch):
        monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
        with pytest.raises(SynthesisError):
            ElevenLabsSynthesizer(api_key=None)


class TestFactory:
    def test_create_synthesizer_by_type(self):
        assert isinstance(create_synthesizer(TTSConfig(type="openai", api_key="sk-test")), OpenAISynthesizer)
        assert isinstance(create_synthesizer(TTSConfig(type="kokoro")), KokoroSynthesizer)
        eleven = create_synthesizer(
            TTSConfig(type="elevenlabs", api_key="key", options={"similarityBoost": 0.9})
        )
        assert isinstance(eleven, ElevenLabsSynthesizer)
        assert eleven.similarity_boost == 0.9
        eleven.close()

    def test_factory_caches_per_profile(self, tmp_path):
        built = []

        def builder(config):
            built.append(config)
            return MagicMock()

        factory = SynthesizerFactory(builder=builder)
        profile = make_profile(tmp_path)

        assert factory.get(profile) is factory.get(profile)
        assert len(built) == 1

    def test_clear_closes_and_rebuilds(self, tmp_path):
        instances = []

        def builder(config):
            instance = MagicMock()
            instances.append(instance)
            return instance

        factory = SynthesizerFactory(builder=builder)
        profile = make_profile(tmp_path)
        factory.get(profile)
        factory.clear()
        factory.get(profile)

        instances[0].close.assert_called_once()
        assert len(instances) == 2
