from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..models import ErrorKind


class AIProvider(str, Enum):
    GROK = 'grok'
    OLLAMA = 'ollama'
    CUSTOM = 'custom'
    CLAUDE = 'claude'

    @property
    def supports_vision(self) -> bool:
        return self in (AIProvider.GROK, AIProvider.CUSTOM, AIProvider.CLAUDE)


@dataclass
class AIResult:
    """Uniform outcome of one AI invocation."""
    success: bool
    content: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    usage: Optional[dict] = None

    @classmethod
    def ok(cls, content: str, usage: Optional[dict] = None) -> 'AIResult':
        return cls(success=True, content=content, usage=usage)

    @classmethod
    def failure(cls, error: str, kind: ErrorKind = ErrorKind.PROVIDER_ERROR) -> 'AIResult':
        return cls(success=False, error=error, error_kind=kind)


@dataclass
class ImageInput:
    """Base64 image payload for vision requests"""
    data: str
    mime_type: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class InvalidResponseError(Exception):
    """Raised by a backend when the response lacks the expected content field."""
    pass


class InsufficientCreditsError(Exception):
    """Raised when the provider reports that account credits are depleted."""
    pass
