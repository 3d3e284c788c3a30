from .compositor import ComposedPrompt, build_system_prompt, compose, replace_placeholders
from .defaults import BUILTIN_TEMPLATES, CORE_TEMPLATE_IDS

__all__ = [
    'BUILTIN_TEMPLATES',
    'CORE_TEMPLATE_IDS',
    'ComposedPrompt',
    'build_system_prompt',
    'compose',
    'replace_placeholders'
]
