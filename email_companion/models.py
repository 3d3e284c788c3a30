from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional


class TemplateCategory(str, Enum):
    """Prompt template categories"""
    SUMMARIZE = 'summarize'
    REPLY = 'reply'
    INSIGHTS = 'insights'
    CUSTOM = 'custom'

    def __str__(self) -> str:
        return self.value


class ExtractionFormat(str, Enum):
    TEXT = 'text'
    PDF = 'pdf'
    WORD = 'word'
    CSV = 'csv'
    EXCEL = 'excel'
    IMAGE = 'image'

    def __str__(self) -> str:
        return self.value


class AnalysisKind(str, Enum):
    """Kinds of standalone file analysis"""
    SUMMARIZE = 'summarize'
    EXTRACT = 'extract'
    QUESTIONS = 'questions'


class PipelineState(str, Enum):
    IDLE = 'idle'
    FETCHING = 'fetching'
    EXTRACTING = 'extracting'
    ANALYZING = 'analyzing'
    COMPOSING = 'composing'
    INVOKING_AI = 'invoking-ai'
    SANITIZING = 'sanitizing'
    DELIVERING = 'delivering'
    FAILED = 'failed'


class ErrorKind(str, Enum):
    NOT_CONNECTED = 'not_connected'
    UNSUPPORTED_FORMAT = 'unsupported_format'
    EXTRACTION_FAILED = 'extraction_failed'
    RATE_LIMITED = 'rate_limited'
    CREDENTIALS_MISSING = 'credentials_missing'
    PROVIDER_ERROR = 'provider_error'
    DELIVERY_FAILED = 'delivery_failed'
    INVALID_INPUT = 'invalid_input'
    STORAGE_FAILED = 'storage_failed'


@dataclass(frozen=True)
class Message:
    """Snapshot of a mail-client message. Every field is best-effort."""
    message_id: str
    subject: str = ''
    sender_name: str = ''
    sender_email: str = ''
    to: str = ''
    cc: str = ''
    body: str = ''
    received_time: Optional[datetime] = None
    attachment_count: int = 0
    is_read: bool = True
    importance: str = 'normal'
    thread_id: Optional[str] = None

    @property
    def has_attachments(self) -> bool:
        return self.attachment_count > 0

    @property
    def received_display(self) -> str:
        return self.received_time.isoformat() if self.received_time else ''


@dataclass
class AttachmentFile:
    """An attachment already saved to a local file"""
    filename: str
    path: Path
    size: int = 0

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix.lower()


@dataclass
class ExtractionResult:
    """Outcome of turning one file into text.

    `text` may have been truncated; check `truncated` before assuming it is
    the whole document. Images without usable OCR text carry `image_base64`
    and `mime_type` for a vision-capable provider instead.
    """
    success: bool
    file_name: str
    text: str = ''
    format: Optional[ExtractionFormat] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    is_scanned: bool = False
    has_ocr_text: bool = False
    page_count: Optional[int] = None
    warning: Optional[str] = None
    image_base64: Optional[str] = None
    mime_type: Optional[str] = None
    truncated: bool = False


@dataclass
class AttachmentSummary:
    filename: str
    summary: str
    type: str
    char_count: int = 0
    success: bool = True


@dataclass
class PromptTemplate:
    id: str
    name: str
    template: str
    category: TemplateCategory = TemplateCategory.CUSTOM
    description: str = ''
    is_favorite: bool = False
    usage_count: int = 0
    is_builtin: bool = False


@dataclass
class PersonalContext:
    enabled: bool = True
    name: str = ''
    role: str = ''
    company: str = ''
    industry: str = ''
    communication_style: str = ''
    detail_level: str = ''
    custom_notes: str = ''


@dataclass
class OrganizationContext:
    enabled: bool = False
    content: str = ''


@dataclass
class ContextProfile:
    """Persistent identity and preference blocks merged into the system prompt"""
    personal: PersonalContext = field(default_factory=PersonalContext)
    organization: OrganizationContext = field(default_factory=OrganizationContext)


@dataclass
class PipelineResult:
    """Data class for the outcome of a One Shot / Smart Shot run"""
    success: bool
    state: PipelineState
    content: Optional[str] = None
    used_templates: list[str] = field(default_factory=list)
    had_quick_notes: bool = False
    attachment_summaries: list[AttachmentSummary] = field(default_factory=list)
    delivered: bool = False
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    failed_stage: Optional[PipelineState] = None


class CompanionError(Exception):
    """Base exception carrying an ErrorKind."""
    kind: ErrorKind = ErrorKind.PROVIDER_ERROR

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class NotConnectedError(CompanionError):
    """Raised when the mail client is unavailable or nothing is selected."""
    kind = ErrorKind.NOT_CONNECTED


class RateLimitedError(CompanionError):
    kind = ErrorKind.RATE_LIMITED


class CredentialsMissingError(CompanionError):
    kind = ErrorKind.CREDENTIALS_MISSING


class ProviderError(CompanionError):
    kind = ErrorKind.PROVIDER_ERROR


class DeliveryFailedError(CompanionError):
    kind = ErrorKind.DELIVERY_FAILED


class InvalidInputError(CompanionError):
    kind = ErrorKind.INVALID_INPUT


class StorageError(CompanionError):
    """Raised when the template store cannot be read."""
    kind = ErrorKind.STORAGE_FAILED
