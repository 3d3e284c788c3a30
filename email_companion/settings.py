"""
User-editable settings: provider selection and the context profile.

Stored as JSON in the data directory. API keys never go in this file;
they are read from the environment by the credential store.
"""
import ipaddress
import json
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from .ai.models import AIProvider
from .config import AIConfig, config
from .logger import get_logger
from .models import ContextProfile, OrganizationContext, PersonalContext

logger = get_logger(__name__)

MAX_MODEL_LENGTH = 100
MAX_ENDPOINT_LENGTH = 500
MAX_PERSONAL_FIELD_LENGTH = 100
MAX_NOTES_LENGTH = 2000
MAX_ORGANIZATION_LENGTH = 15000

COMMUNICATION_STYLES = ('professional', 'friendly', 'casual', '')
DETAIL_LEVELS = ('concise', 'detailed', '')


class SettingsValidationError(ValueError):
    """Raised when user settings fail validation."""
    pass


@dataclass
class UserSettings:
    ai: AIConfig
    profile: ContextProfile = field(default_factory=ContextProfile)


def is_local_or_private_host(hostname: str) -> bool:
    """True for localhost and RFC 1918 / loopback addresses."""
    if not hostname:
        return False
    if hostname.lower() == 'localhost':
        return True
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return address.is_loopback or address.is_private


def validate_endpoint(endpoint: str) -> str:
    if len(endpoint) > MAX_ENDPOINT_LENGTH:
        raise SettingsValidationError('Invalid endpoint.')
    parsed = urlparse(endpoint)
    if parsed.scheme not in ('http', 'https') or not parsed.hostname:
        raise SettingsValidationError('Invalid API endpoint URL.')
    if parsed.scheme != 'https' and not is_local_or_private_host(parsed.hostname):
        raise SettingsValidationError('API endpoint must use HTTPS (except for local/network servers).')
    return endpoint


def _clip(value, limit: int) -> str:
    return value[:limit] if isinstance(value, str) else ''


def normalize_profile(profile: ContextProfile) -> ContextProfile:
    """Clip context fields and reset unknown style or detail choices."""
    personal = profile.personal
    return ContextProfile(
        personal=PersonalContext(
            enabled=personal.enabled is not False,
            name=_clip(personal.name, MAX_PERSONAL_FIELD_LENGTH),
            role=_clip(personal.role, MAX_PERSONAL_FIELD_LENGTH),
            company=_clip(personal.company, MAX_PERSONAL_FIELD_LENGTH),
            industry=_clip(personal.industry, MAX_PERSONAL_FIELD_LENGTH),
            communication_style=personal.communication_style
            if personal.communication_style in COMMUNICATION_STYLES else '',
            detail_level=personal.detail_level if personal.detail_level in DETAIL_LEVELS else '',
            custom_notes=_clip(personal.custom_notes, MAX_NOTES_LENGTH),
        ),
        organization=OrganizationContext(
            enabled=bool(profile.organization.enabled),
            content=_clip(profile.organization.content, MAX_ORGANIZATION_LENGTH),
        ),
    )


def validate_settings(settings: UserSettings) -> UserSettings:
    """Return a cleaned copy of `settings`.

    Raises:
        SettingsValidationError: If the provider, model or endpoint is invalid
    """
    ai = settings.ai
    try:
        AIProvider(ai.provider)
    except ValueError:
        raise SettingsValidationError('Invalid AI provider.') from None
    if not isinstance(ai.model, str) or len(ai.model) > MAX_MODEL_LENGTH:
        raise SettingsValidationError('Invalid model name.')
    if ai.endpoint:
        validate_endpoint(ai.endpoint)

    return UserSettings(ai=replace(ai), profile=normalize_profile(settings.profile))


def _text(value) -> str:
    return value if isinstance(value, str) else ''


def _known_fields(section, cls) -> dict:
    if not isinstance(section, dict):
        return {}
    return {k: v for k, v in section.items() if k in cls.__dataclass_fields__}


class SettingsStore:
    """Loads settings at startup and writes them back on every change."""

    def __init__(self, path: Optional[Path] = None, defaults: Optional[AIConfig] = None):
        self.path = Path(path or config.settings_file)
        self.defaults = defaults or config.ai

    def load(self) -> UserSettings:
        """Read stored settings, falling back to defaults when absent or unreadable."""
        if not self.path.exists():
            return UserSettings(ai=replace(self.defaults))

        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read settings from {self.path}: {e}")
            return UserSettings(ai=replace(self.defaults))
        if not isinstance(data, dict):
            logger.warning(f"Ignoring settings in {self.path}: expected a JSON object")
            return UserSettings(ai=replace(self.defaults))

        ai = replace(
            self.defaults,
            provider=_text(data.get('provider')) or self.defaults.provider,
            model=_text(data.get('model')) or self.defaults.model,
            endpoint=_text(data.get('endpoint')) or self.defaults.endpoint,
        )
        profile = ContextProfile(
            personal=PersonalContext(**_known_fields(data.get('personal'), PersonalContext)),
            organization=OrganizationContext(**_known_fields(data.get('organization'), OrganizationContext)),
        )
        return UserSettings(ai=ai, profile=normalize_profile(profile))

    def save(self, settings: UserSettings) -> UserSettings:
        """Validate and persist settings, returning what was stored.

        Raises:
            SettingsValidationError: If validation fails; nothing is written
        """
        cleaned = validate_settings(settings)
        payload = {
            'provider': cleaned.ai.provider,
            'model': cleaned.ai.model,
            'endpoint': cleaned.ai.endpoint,
            'personal': asdict(cleaned.profile.personal),
            'organization': asdict(cleaned.profile.organization),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(payload, indent=2), encoding='utf-8')
        logger.info(f"Saved settings to {self.path}")
        return cleaned
