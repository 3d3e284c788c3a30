"""
Request/response handling for each supported AI provider.

Every backend takes the same (system prompt, user content) pair and either
returns the reply text or raises ProviderError with a readable reason.
"""
from abc import ABC, abstractmethod
from typing import Any, Optional

import anthropic
import httpx

from ..config import AIConfig
from ..logger import get_logger
from ..models import ProviderError
from .models import AIProvider, ImageInput, InsufficientCreditsError, InvalidResponseError

logger = get_logger(__name__)

INVALID_RESPONSE = 'Invalid response from API'


def _error_detail(response: httpx.Response) -> str:
    """Pull a provider error message out of an HTTP error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(data, dict):
        error = data.get('error')
        if isinstance(error, dict) and error.get('message'):
            return str(error['message'])
        if isinstance(error, str):
            return error
    return response.reason_phrase


class ChatBackend(ABC):
    """One provider's wire format."""

    requires_api_key = True

    def timeout_for(self, settings: AIConfig) -> float:
        return settings.timeout

    @abstractmethod
    async def send(
        self,
        settings: AIConfig,
        api_key: Optional[str],
        system_prompt: str,
        user_content: str,
        image: Optional[ImageInput] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> tuple[str, Optional[dict]]:
        """Return (content, usage) or raise ProviderError."""


class HttpChatBackend(ChatBackend):
    """Shared POST/validate flow for JSON-over-HTTP providers."""

    unreachable_message: Optional[str] = None

    @abstractmethod
    def build_payload(self, settings: AIConfig, system_prompt: str, user_content: str,
                      image: Optional[ImageInput]) -> dict:
        pass

    @abstractmethod
    def parse_response(self, data: Any) -> tuple[str, Optional[dict]]:
        pass

    def headers(self, api_key: Optional[str]) -> dict:
        headers = {'Content-Type': 'application/json'}
        if api_key:
            headers['Authorization'] = f"Bearer {api_key}"
        return headers

    async def send(self, settings, api_key, system_prompt, user_content, image=None, client=None):
        timeout = self.timeout_for(settings)
        payload = self.build_payload(settings, system_prompt, user_content, image)

        try:
            if client is not None:
                response = await client.post(settings.endpoint, json=payload,
                                             headers=self.headers(api_key), timeout=timeout)
            else:
                async with httpx.AsyncClient(timeout=httpx.Timeout(timeout)) as owned_client:
                    response = await owned_client.post(settings.endpoint, json=payload,
                                                       headers=self.headers(api_key))
            response.raise_for_status()
            return self.parse_response(response.json())

        except httpx.TimeoutException as e:
            raise ProviderError(f"Request timed out after {timeout:.0f} seconds") from e
        except httpx.ConnectError as e:
            raise ProviderError(self.unreachable_message or f"Cannot connect to {settings.endpoint}: {e}") from e
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            raise ProviderError(f"API error ({e.response.status_code}): {detail}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Network error: {e}") from e
        except (InvalidResponseError, ValueError) as e:
            logger.debug(f"Unexpected response shape: {e}")
            raise ProviderError(INVALID_RESPONSE) from e


class OpenAICompatibleBackend(HttpChatBackend):
    """Grok and any OpenAI-compatible endpoint."""

    def build_payload(self, settings, system_prompt, user_content, image):
        if image is not None:
            content = [
                {'type': 'text', 'text': user_content},
                {'type': 'image_url', 'image_url': {'url': image.data_url}},
            ]
        else:
            content = user_content

        return {
            'model': settings.model,
            'messages': [
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': content},
            ],
            'temperature': settings.temperature,
            'max_tokens': settings.max_tokens,
        }

    def parse_response(self, data):
        try:
            content = data['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError) as e:
            raise InvalidResponseError(str(e)) from e
        if not isinstance(content, str):
            raise InvalidResponseError(f"content is {type(content).__name__}, expected text")
        return content, data.get('usage')


class OllamaBackend(HttpChatBackend):
    """Local Ollama server (/api/chat)."""

    requires_api_key = False
    unreachable_message = 'Cannot connect to Ollama. Make sure Ollama is running (ollama serve).'

    def timeout_for(self, settings: AIConfig) -> float:
        return max(settings.local_timeout, settings.timeout)

    def build_payload(self, settings, system_prompt, user_content, image):
        user_message = {'role': 'user', 'content': user_content}
        if image is not None:
            user_message['images'] = [image.data]
        return {
            'model': settings.model,
            'messages': [
                {'role': 'system', 'content': system_prompt},
                user_message,
            ],
            'stream': False,
        }

    def parse_response(self, data):
        try:
            content = data['message']['content']
        except (KeyError, TypeError) as e:
            raise InvalidResponseError(str(e)) from e
        if not isinstance(content, str):
            raise InvalidResponseError(f"content is {type(content).__name__}, expected text")
        return content, None


class ClaudeBackend(ChatBackend):
    """Anthropic Messages API through the official SDK."""

    def __init__(self, client_factory=anthropic.AsyncAnthropic):
        self.client_factory = client_factory

    async def send(self, settings, api_key, system_prompt, user_content, image=None, client=None):
        timeout = self.timeout_for(settings)
        kwargs = {'api_key': api_key, 'timeout': timeout, 'max_retries': 0}
        if settings.endpoint and 'api.anthropic.com' not in settings.endpoint:
            kwargs['base_url'] = settings.endpoint
        claude = self.client_factory(**kwargs)

        if image is not None:
            content = [
                {'type': 'image', 'source': {'type': 'base64', 'media_type': image.mime_type, 'data': image.data}},
                {'type': 'text', 'text': user_content},
            ]
        else:
            content = user_content

        try:
            response = await claude.messages.create(
                model=settings.model,
                max_tokens=settings.max_tokens,
                temperature=settings.temperature,
                system=system_prompt,
                messages=[{'role': 'user', 'content': content}]
            )
        except anthropic.APITimeoutError as e:
            raise ProviderError(f"Request timed out after {timeout:.0f} seconds") from e
        except anthropic.APIConnectionError as e:
            raise ProviderError(f"Cannot connect to Claude API: {e}") from e
        except anthropic.APIError as e:
            error_message = str(e)
            if 'credit balance is too low' in error_message.lower():
                logger.error("Claude API credits exhausted. Please recharge your account.")
                raise ProviderError("Claude API credits are exhausted") from InsufficientCreditsError(error_message)
            raise ProviderError(f"Claude API error: {error_message}") from e

        blocks = getattr(response, 'content', None)
        text = getattr(blocks[0], 'text', None) if isinstance(blocks, list) and blocks else None
        if not isinstance(text, str):
            raise ProviderError(INVALID_RESPONSE)

        usage = getattr(response, 'usage', None)
        usage_dict = None
        if usage is not None and hasattr(usage, 'input_tokens'):
            usage_dict = {'input_tokens': usage.input_tokens, 'output_tokens': usage.output_tokens}
        return text, usage_dict


BACKENDS: dict[AIProvider, ChatBackend] = {
    AIProvider.GROK: OpenAICompatibleBackend(),
    AIProvider.CUSTOM: OpenAICompatibleBackend(),
    AIProvider.OLLAMA: OllamaBackend(),
    AIProvider.CLAUDE: ClaudeBackend(),
}
