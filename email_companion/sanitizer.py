"""
Cleanup of AI output before it is written into a rich-text mail body.

Raw markdown renders as literal punctuation in the mail client, so every
reply body passes through `sanitize` before delivery.
"""
import re

_ANGLE_URL = re.compile(r'<(https?://[^>]+)>')
_MARKDOWN_LINK = re.compile(r'\[([^\]]+)\]\([^)]+\)')
_BOLD = re.compile(r'\*\*([^*]+)\*\*')
# Leading "* " bullets are left alone
_ITALIC = re.compile(r'(?<!\n)\*([^*\n]+)\*(?!\*)')
_INLINE_CODE = re.compile(r'`([^`]+)`')
_MULTI_SPACE = re.compile(r'  +')
_EXCESS_NEWLINES = re.compile(r'\n{3,}')


def _sanitize_once(text: str) -> str:
    cleaned = _ANGLE_URL.sub(r'\1', text)
    cleaned = _MARKDOWN_LINK.sub(r'\1', cleaned)
    cleaned = _BOLD.sub(r'\1', cleaned)
    cleaned = _ITALIC.sub(r'\1', cleaned)
    cleaned = _INLINE_CODE.sub(r'\1', cleaned)
    cleaned = _MULTI_SPACE.sub(' ', cleaned)
    cleaned = _EXCESS_NEWLINES.sub('\n\n', cleaned)
    return cleaned.strip()


def sanitize(text: str) -> str:
    """Strip markdown artifacts and normalize whitespace.

    Every rule only removes characters, so repeating the pass until nothing
    changes terminates and makes the function idempotent.
    """
    if not text:
        return text or ''

    current = text
    while True:
        cleaned = _sanitize_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned
