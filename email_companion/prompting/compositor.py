"""
Builds the system prompt and user content sent to the AI.

The system prompt carries persistent identity and preferences (context
profile). The user content carries the per-run instruction and data
(templates, quick notes, attachment summaries and the email itself). The
two are assembled independently.
"""
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..logger import get_logger
from ..models import AttachmentSummary, ContextProfile, Message, PromptTemplate

logger = get_logger(__name__)

FALLBACK_INSTRUCTION = 'Please analyze and respond to this email:'
DEFAULT_SYSTEM_PROMPT = 'You are a helpful email assistant.'
ASSISTANT_GUIDANCE = 'Help the user understand and respond to their emails efficiently.'
ATTACHMENT_GUIDANCE = ('Please consider both the email content AND the attachment information '
                       'above when drafting your response.')


@dataclass
class ComposedPrompt:
    system_prompt: str
    instruction: str
    user_content: str
    used_templates: list[str] = field(default_factory=list)
    had_quick_notes: bool = False


def placeholder_values(message: Optional[Message]) -> dict[str, str]:
    if message is None:
        return {}
    return {
        '{email_body}': message.body or '',
        '{subject}': message.subject or '',
        '{sender}': message.sender_name or message.sender_email or '',
        '{sender_email}': message.sender_email or '',
        '{sender_name}': message.sender_name or '',
        '{to}': message.to or '',
        '{cc}': message.cc or '',
        '{date}': message.received_display,
    }


def replace_placeholders(template: str, message: Optional[Message]) -> str:
    """Substitute message values for known {tokens}; unknown tokens stay as written."""
    result = template
    for placeholder, value in placeholder_values(message).items():
        result = result.replace(placeholder, value)
    return result


def build_instruction(
    templates: Sequence[PromptTemplate],
    message: Optional[Message],
    quick_notes: Optional[str] = None,
    attachment_summaries: Optional[Sequence[AttachmentSummary]] = None,
) -> str:
    """Concatenate templates, quick notes and attachment summaries in that order."""
    instruction = ''
    for template in templates:
        instruction += f"### {template.name}:\n{replace_placeholders(template.template, message)}\n\n"

    if not instruction:
        instruction = FALLBACK_INSTRUCTION

    if quick_notes and quick_notes.strip():
        instruction += f"\n### Additional Instructions (one-time):\n{quick_notes.strip()}\n"

    if attachment_summaries:
        instruction += '\n\n--- ATTACHMENT SUMMARIES ---\n'
        for attachment in attachment_summaries:
            instruction += f"\nFile: {attachment.filename}\nKey Information:\n{attachment.summary}\n"
        instruction += '\n--- END ATTACHMENTS ---\n'
        instruction += f"\n{ATTACHMENT_GUIDANCE}"

    return instruction


def format_email_block(message: Message) -> str:
    return (
        "--- EMAIL ---\n"
        f"Subject: {message.subject}\n"
        f"From: {message.sender_name} <{message.sender_email}>\n"
        f"To: {message.to}\n"
        f"Date: {message.received_display}\n\n"
        f"{message.body}\n"
        "--- END EMAIL ---"
    )


def build_user_content(instruction: str, message: Optional[Message]) -> str:
    if message is None:
        return instruction
    return f"{instruction}\n\n{format_email_block(message)}"


def build_system_prompt(profile: Optional[ContextProfile]) -> str:
    """Merge organizational then personal context into one preamble."""
    profile = profile or ContextProfile()
    personal = profile.personal
    organization = profile.organization
    parts = []

    has_organization = organization.enabled and bool(organization.content and organization.content.strip())
    if has_organization:
        parts.append(organization.content.strip())

    if personal.enabled:
        if personal.name or personal.role or personal.company:
            user_info = 'You are helping'
            if personal.name:
                user_info += f" {personal.name}"
            if personal.role:
                user_info += f", {personal.role}"
            if personal.company:
                user_info += f" at {personal.company}"
            if personal.industry:
                user_info += f" ({personal.industry} industry)"
            parts.append(user_info + '.')

        style = personal.communication_style.strip()
        detail = personal.detail_level.strip()
        if style or detail:
            preferences = 'Communication preferences:'
            if style:
                preferences += f" {style} tone"
            if detail:
                preferences += f"{',' if style else ''} {detail} responses"
            parts.append(preferences + '.')

        if personal.custom_notes and personal.custom_notes.strip():
            parts.append(f"Additional notes:\n{personal.custom_notes}")

    if not parts:
        return DEFAULT_SYSTEM_PROMPT

    system_prompt = '\n\n'.join(parts)
    # Organizational context brings its own instructions
    if not has_organization:
        system_prompt += f"\n\n{ASSISTANT_GUIDANCE}"

    logger.debug(f"Built system prompt ({len(system_prompt)} chars, organization={has_organization})")
    return system_prompt


def compose(
    templates: Sequence[PromptTemplate],
    message: Optional[Message],
    quick_notes: Optional[str] = None,
    context_profile: Optional[ContextProfile] = None,
    attachment_summaries: Optional[Sequence[AttachmentSummary]] = None,
) -> ComposedPrompt:
    """Resolve the selected templates and context into the prompt pair for one run."""
    instruction = build_instruction(templates, message, quick_notes, attachment_summaries)
    return ComposedPrompt(
        system_prompt=build_system_prompt(context_profile),
        instruction=instruction,
        user_content=build_user_content(instruction, message),
        used_templates=[t.name for t in templates],
        had_quick_notes=bool(quick_notes and quick_notes.strip())
    )
