from .models import PipelineRun, PromptPreset, PromptTemplateRecord
from .manager import DatabaseManager, TemplateStoreError

__all__ = [
    'PromptTemplateRecord',
    'PromptPreset',
    'PipelineRun',
    'DatabaseManager',
    'TemplateStoreError'
]
