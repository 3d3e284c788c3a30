from .service import GmailMailClient

__all__ = ['GmailMailClient']
