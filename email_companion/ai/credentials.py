"""
API key lookup for AI providers.
"""
import os
from typing import Optional

from .models import AIProvider

# Checked in order; the first non-empty variable wins
PROVIDER_KEY_VARIABLES = {
    AIProvider.GROK: ('GROK_API_KEY', 'XAI_API_KEY'),
    AIProvider.CUSTOM: ('CUSTOM_API_KEY', 'OPENAI_API_KEY'),
    AIProvider.CLAUDE: ('ANTHROPIC_API_KEY',),
    AIProvider.OLLAMA: (),
}


class CredentialStore:
    """Resolves API keys from the process environment.

    Keys are read on every call and never held by the store, so a key
    rotated in the environment takes effect on the next invocation.
    """

    def get_api_key(self, provider: AIProvider) -> Optional[str]:
        for variable in PROVIDER_KEY_VARIABLES.get(provider, ()):
            value = os.getenv(variable)
            if value and value.strip():
                return value.strip()
        return None

    def has_api_key(self, provider: AIProvider) -> bool:
        return self.get_api_key(provider) is not None
