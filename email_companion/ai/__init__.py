from .credentials import CredentialStore
from .invoker import AIInvoker
from .models import AIProvider, AIResult, ImageInput

__all__ = [
    'AIInvoker',
    'AIProvider',
    'AIResult',
    'CredentialStore',
    'ImageInput'
]
