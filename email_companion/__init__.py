from email_companion.ai import AIInvoker, AIProvider
from email_companion.database import DatabaseManager
from email_companion.extraction import AttachmentHarvester, ContentExtractor
from email_companion.gmail import GmailMailClient
from email_companion.manager import PipelineManager
from email_companion.models import Message, PipelineResult, PipelineState
from email_companion.sanitizer import sanitize

__all__ = [
    'AIInvoker',
    'AIProvider',
    'AttachmentHarvester',
    'ContentExtractor',
    'DatabaseManager',
    'GmailMailClient',
    'Message',
    'PipelineManager',
    'PipelineResult',
    'PipelineState',
    'sanitize'
]
