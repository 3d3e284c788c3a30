"""
Configuration management for the Email Companion application.
"""
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_ENDPOINTS = {
    'grok': 'https://api.x.ai/v1/chat/completions',
    'ollama': 'http://localhost:11434/api/chat',
    'custom': 'http://localhost:8080/v1/chat/completions',
    'claude': 'https://api.anthropic.com',
}

DEFAULT_MODELS = {
    'grok': 'grok-4',
    'ollama': 'llama3.1',
    'custom': 'gpt-4o-mini',
    'claude': 'claude-sonnet-4-5',
}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class AIConfig:
    """AI provider configuration."""
    provider: str = 'grok'
    model: str = DEFAULT_MODELS['grok']
    endpoint: str = DEFAULT_ENDPOINTS['grok']
    timeout: float = 120.0
    local_timeout: float = 240.0
    temperature: float = 0.7
    max_tokens: int = 2000


@dataclass
class ExtractionConfig:
    """Limits and heuristics used when turning files into text.

    The scanned-PDF and OCR thresholds are approximate heuristics, kept
    configurable rather than derived.
    """
    attachment_max_chars: int = 5000
    file_analysis_max_chars: int = 50000
    scanned_chars_per_page: int = 100
    scanned_min_chars: int = 50
    ocr_min_chars: int = 20
    ocr_language: str = 'eng'
    ocr_scanned_pdfs: bool = True


@dataclass
class RateLimitConfig:
    """Fixed-window limits applied per operation key."""
    max_calls: int = 20
    window_seconds: float = 60.0


@dataclass
class GmailConfig:
    """Gmail-related configuration settings."""
    credentials_file: Optional[str]
    token_file: Optional[str]
    active_query: str = 'in:inbox'
    scopes: list[str] = None

    def __post_init__(self):
        if self.scopes is None:
            self.scopes = [
                'https://www.googleapis.com/auth/gmail.readonly',
                'https://www.googleapis.com/auth/gmail.compose'
            ]


@dataclass
class DatabaseConfig:
    """Database connection configuration."""
    url: str


@dataclass
class Config:
    """Main application configuration."""
    # Application paths
    base_dir: Path
    data_dir: Path
    logs_dir: Path
    settings_file: Path
    temp_dir: Path

    # Component configurations
    ai: AIConfig
    gmail: GmailConfig
    db: DatabaseConfig
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    @classmethod
    def load(cls) -> 'Config':
        """Load configuration from environment variables."""
        base_dir = Path(__file__).parent.parent
        data_dir = Path(os.getenv('EMAIL_COMPANION_HOME', Path.home() / '.email_companion'))
        provider = os.getenv('AI_PROVIDER', 'grok').lower()

        return cls(
            base_dir=base_dir,
            data_dir=data_dir,
            logs_dir=Path(os.getenv('EMAIL_COMPANION_LOG_DIR', data_dir / 'logs')),
            settings_file=data_dir / 'ai-settings.json',
            temp_dir=Path(tempfile.gettempdir()) / 'email-companion-attachments',

            ai=AIConfig(
                provider=provider,
                model=os.getenv('AI_MODEL', DEFAULT_MODELS.get(provider, '')),
                endpoint=os.getenv('AI_ENDPOINT', DEFAULT_ENDPOINTS.get(provider, '')),
                timeout=float(os.getenv('AI_TIMEOUT', '120')),
                local_timeout=float(os.getenv('AI_LOCAL_TIMEOUT', '240')),
            ),

            gmail=GmailConfig(
                credentials_file=os.getenv('GMAIL_CREDENTIALS_FILE'),
                token_file=os.getenv('GMAIL_TOKEN_FILE'),
                active_query=os.getenv('GMAIL_ACTIVE_QUERY', 'in:inbox')
            ),

            db=DatabaseConfig(
                url=os.getenv('DATABASE_URL', f"sqlite:///{data_dir / 'companion.db'}")
            ),

            extraction=ExtractionConfig(
                ocr_language=os.getenv('OCR_LANGUAGE', 'eng'),
                ocr_scanned_pdfs=_env_bool('OCR_SCANNED_PDFS', True)
            ),

            rate_limit=RateLimitConfig(
                max_calls=int(os.getenv('RATE_LIMIT_MAX_CALLS', '20')),
                window_seconds=float(os.getenv('RATE_LIMIT_WINDOW_SECONDS', '60'))
            )
        )


# Global configuration instance
config = Config.load()
