"""Provider adapters for text generation and speech synthesis.

Each provider family owns its wire translation and failure classification;
shared HTTP plumbing lives in `transport`.
"""

from .anthropic import AnthropicTextAdapter
from .base import (
    ChatMessage,
    SpeechAdapter,
    SpeechRequest,
    SynthesizedAudio,
    TextAdapter,
    TextRequest,
)
from .elevenlabs import ElevenLabsSpeechAdapter
from .openai_compat import OpenAICompatibleSpeechAdapter, OpenAICompatibleTextAdapter
from .routing import route_speech_config

__all__ = [
    "AnthropicTextAdapter",
    "ChatMessage",
    "ElevenLabsSpeechAdapter",
    "OpenAICompatibleSpeechAdapter",
    "OpenAICompatibleTextAdapter",
    "SpeechAdapter",
    "SpeechRequest",
    "SynthesizedAudio",
    "TextAdapter",
    "TextRequest",
    "route_speech_config",
]
