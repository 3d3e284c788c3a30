from typing import Optional

import httpx

from ..config import AIConfig
from ..logger import get_logger
from ..models import CompanionError, ErrorKind
from .credentials import CredentialStore
from .models import AIProvider, AIResult, ImageInput
from .providers import BACKENDS, ChatBackend

logger = get_logger(__name__)


class AIInvoker:
    """Dispatches a (system prompt, user content) pair to the configured provider."""

    def __init__(
        self,
        settings: AIConfig,
        credentials: Optional[CredentialStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        backends: Optional[dict[AIProvider, ChatBackend]] = None,
    ):
        """Initialize the invoker.

        Args:
            settings: Provider, model, endpoint and timeouts
            credentials: Where API keys are looked up (environment by default)
            http_client: Optional shared client; one is created per call otherwise
            backends: Override for the provider -> backend table
        """
        self.settings = settings
        self.credentials = credentials or CredentialStore()
        self.http_client = http_client
        self.backends = backends or BACKENDS

    def credentials_ready(self, settings: Optional[AIConfig] = None) -> bool:
        """True unless the configured provider needs an API key that is not set."""
        settings = settings or self.settings
        try:
            provider = AIProvider(settings.provider)
        except ValueError:
            # Reported by invoke() with a clearer message
            return True
        if not self.backends[provider].requires_api_key:
            return True
        return self.credentials.has_api_key(provider)

    async def invoke(
        self,
        system_prompt: str,
        user_content: str,
        image: Optional[ImageInput] = None,
        settings: Optional[AIConfig] = None,
    ) -> AIResult:
        """Send one request and return a uniform result. Never raises."""
        settings = settings or self.settings

        try:
            provider = AIProvider(settings.provider)
        except ValueError:
            return AIResult.failure(f"Unknown AI provider: {settings.provider}")

        backend = self.backends[provider]
        if image is not None and not provider.supports_vision:
            return AIResult.failure('Image analysis requires a vision-capable provider (Grok, Claude or a custom OpenAI-compatible endpoint).')

        api_key = None
        if backend.requires_api_key:
            # Looked up per call, never kept on the invoker
            api_key = self.credentials.get_api_key(provider)
            if not api_key:
                logger.error(f"No API key configured for provider '{provider.value}'")
                return AIResult.failure(
                    'API key not configured. Please set your API key in Settings.',
                    ErrorKind.CREDENTIALS_MISSING
                )

        logger.info(f"Invoking {provider.value} model '{settings.model}' "
                    f"(system {len(system_prompt)} chars, user {len(user_content)} chars)")
        try:
            content, usage = await backend.send(
                settings,
                api_key,
                system_prompt,
                user_content,
                image=image,
                client=self.http_client
            )
        except CompanionError as e:
            logger.error(f"{provider.value} request failed: {e}")
            return AIResult.failure(str(e), e.kind)
        except Exception as e:
            logger.error(f"Unexpected error calling {provider.value}: {e}")
            return AIResult.failure(f"Unexpected error: {e}")

        logger.info(f"AI response received ({len(content)} chars)")
        return AIResult.ok(content, usage)
