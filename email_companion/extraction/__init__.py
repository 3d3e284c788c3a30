from .extractor import TRUNCATION_MARKER, ContentExtractor, truncate_text
from .harvester import AttachmentHarvester

__all__ = [
    'AttachmentHarvester',
    'ContentExtractor',
    'TRUNCATION_MARKER',
    'truncate_text'
]
