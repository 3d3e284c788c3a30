"""
Pipeline orchestration for the email companion.

This module provides the One Shot and Smart Shot pipelines and the
standalone entry points around them. It coordinates the mail client, the
content extractor, the AI invoker and the template store, and reports
every outcome as a value instead of raising.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from email_companion.ai import AIInvoker, AIResult, ImageInput
from email_companion.ai.prompts import (CONNECTION_TEST_PROMPT, get_file_analysis_prompt,
                                        get_image_analysis_prompt)
from email_companion.config import Config, config
from email_companion.database import DatabaseManager
from email_companion.extraction import AttachmentHarvester, ContentExtractor
from email_companion.logger import get_logger
from email_companion.mail_client import MailClient, MailClientError
from email_companion.models import (AnalysisKind, CompanionError, ContextProfile,
                                    CredentialsMissingError, DeliveryFailedError, ErrorKind,
                                    InvalidInputError, Message, NotConnectedError, PipelineResult,
                                    PipelineState, PromptTemplate, ProviderError, RateLimitedError,
                                    StorageError)
from email_companion.prompting import build_system_prompt, compose, replace_placeholders
from email_companion.prompting.compositor import build_user_content
from email_companion.rate_limiter import RateLimiter
from email_companion.sanitizer import sanitize

logger = get_logger(__name__)

AI_PROCESS_KEY = 'ai-process'
MAIL_REPLY_KEY = 'mail-reply'
FILE_ANALYSIS_KEY = 'file-analysis'

MAX_PROMPT_LENGTH = 50000
MAX_MESSAGE_ID_LENGTH = 500
MAX_REPLY_LENGTH = 100000

RATE_LIMITED_MESSAGE = 'Too many requests. Please wait a moment and try again.'
CREDENTIALS_MISSING_MESSAGE = 'API key not configured. Please set your API key in Settings.'

StateCallback = Callable[[PipelineState], None]


class PipelineManager:
    """Runs One Shot and Smart Shot against the active message.

    One run moves through
    idle -> fetching -> [extracting -> analyzing] -> composing -> invoking-ai
    -> sanitizing -> delivering -> idle, or stops in `failed`. Attachment
    files live in a per-run temp directory that is removed when the run
    ends, whatever the outcome. The current state of a run lives on its
    own PipelineResult, so overlapping runs never share one.

    Attributes:
        mail (MailClient): Mail client collaborator
        invoker (AIInvoker): Sends prompts to the configured provider
        extractor (ContentExtractor): Turns files into text
        templates (DatabaseManager): Template store and run history
        rate_limiter (RateLimiter): Shared per-operation limiter
        profile (ContextProfile): Identity and preferences for the system prompt
    """

    def __init__(
        self,
        mail_client: MailClient,
        invoker: AIInvoker,
        template_store: DatabaseManager,
        extractor: Optional[ContentExtractor] = None,
        rate_limiter: Optional[RateLimiter] = None,
        context_profile: Optional[ContextProfile] = None,
        app_config: Optional[Config] = None,
        on_state_change: Optional[StateCallback] = None,
    ):
        self.config = app_config or config
        self.mail = mail_client
        self.invoker = invoker
        self.templates = template_store
        self.extractor = extractor or ContentExtractor(self.config.extraction)
        self.rate_limiter = rate_limiter or RateLimiter(self.config.rate_limit)
        self.profile = context_profile or ContextProfile()
        self.harvester = AttachmentHarvester(self.extractor, self.invoker, self.rate_limiter)
        self.on_state_change = on_state_change

    @staticmethod
    def _transition(result: PipelineResult, state: PipelineState, notify: Optional[StateCallback]) -> None:
        # result.state is the run's current state until the run ends
        logger.debug(f"Pipeline state: {result.state.value} -> {state.value}")
        result.state = state
        if notify is not None:
            notify(state)

    def _fail(self, result: PipelineResult, kind: ErrorKind, error: str,
              notify: Optional[StateCallback] = None) -> PipelineResult:
        logger.error(f"Pipeline failed during {result.state.value}: {error}")
        result.failed_stage = result.state
        self._transition(result, PipelineState.FAILED, notify)
        result.success = False
        result.error = error
        result.error_kind = kind
        return result

    def _record(self, kind: str, result: PipelineResult, message_id: Optional[str]) -> None:
        # Run history must never change the outcome of a run
        try:
            self.templates.record_run(kind, result, message_id)
        except Exception as e:
            logger.warning(f"Could not record {kind} run: {e}")

    def _load_templates(self, template_ids: Sequence[str]) -> List[PromptTemplate]:
        try:
            return self.templates.get_templates(list(template_ids or []))
        except SQLAlchemyError as e:
            logger.error(f"Could not read templates: {e}")
            raise StorageError('Could not read prompt templates. Please try again.') from e

    async def run_one_shot(
        self,
        template_ids: Sequence[str],
        quick_notes: Optional[str] = None,
        reply_all: bool = False,
        deliver: bool = True,
        on_state_change: Optional[StateCallback] = None,
    ) -> PipelineResult:
        """Compose, invoke and reply for the active message, without attachments.

        `on_state_change` overrides the manager-wide callback for this run only.
        """
        return await self._run('one-shot', template_ids, quick_notes, reply_all, deliver,
                               with_attachments=False, on_state_change=on_state_change)

    async def run_smart_shot(
        self,
        template_ids: Sequence[str],
        quick_notes: Optional[str] = None,
        reply_all: bool = False,
        deliver: bool = True,
        on_state_change: Optional[StateCallback] = None,
    ) -> PipelineResult:
        """Like One Shot, with attachment summaries folded into the prompt."""
        return await self._run('smart-shot', template_ids, quick_notes, reply_all, deliver,
                               with_attachments=True, on_state_change=on_state_change)

    async def _run(
        self,
        kind: str,
        template_ids: Sequence[str],
        quick_notes: Optional[str],
        reply_all: bool,
        deliver: bool,
        with_attachments: bool,
        on_state_change: Optional[StateCallback] = None,
    ) -> PipelineResult:
        result = PipelineResult(success=False, state=PipelineState.IDLE)
        notify = on_state_change or self.on_state_change
        message: Optional[Message] = None
        temp_dir: Optional[Path] = None
        logger.info(f"Starting {kind} with {len(template_ids or [])} templates")

        def transition(state: PipelineState) -> None:
            self._transition(result, state, notify)

        try:
            try:
                if not self.rate_limiter.check(AI_PROCESS_KEY):
                    raise RateLimitedError(RATE_LIMITED_MESSAGE)
                if not self.invoker.credentials_ready():
                    raise CredentialsMissingError(CREDENTIALS_MISSING_MESSAGE)

                transition(PipelineState.FETCHING)
                try:
                    message = await self.mail.fetch_active_message()
                except MailClientError as e:
                    raise NotConnectedError(str(e)) from e

                templates = self._load_templates(template_ids)

                if with_attachments and message.has_attachments:
                    transition(PipelineState.EXTRACTING)
                    temp_dir = self._make_temp_dir()
                    try:
                        attachments = await self.mail.extract_attachments(message.message_id, temp_dir)
                    except MailClientError as e:
                        logger.warning(f"Could not extract attachments, continuing without them: {e}")
                        attachments = []

                    transition(PipelineState.ANALYZING)
                    result.attachment_summaries = await self.harvester.harvest(
                        attachments, build_system_prompt(self.profile)
                    )

                transition(PipelineState.COMPOSING)
                composed = compose(templates, message, quick_notes, self.profile, result.attachment_summaries)
                result.used_templates = composed.used_templates
                result.had_quick_notes = composed.had_quick_notes

                transition(PipelineState.INVOKING_AI)
                ai_result = await self.invoker.invoke(composed.system_prompt, composed.user_content)
                if not ai_result.success:
                    raise ProviderError(ai_result.error, ai_result.error_kind)

                transition(PipelineState.SANITIZING)
                result.content = sanitize(ai_result.content)
                self._count_usage([t.id for t in templates])

                if deliver:
                    transition(PipelineState.DELIVERING)
                    if not self.rate_limiter.check(MAIL_REPLY_KEY):
                        raise RateLimitedError(RATE_LIMITED_MESSAGE)
                    try:
                        await self.mail.create_reply(message.message_id, result.content, reply_all)
                    except MailClientError as e:
                        # The generated text stays on the result for manual copy
                        raise DeliveryFailedError(f"Could not create reply: {e}") from e
                    result.delivered = True

            except CompanionError as e:
                return self._fail(result, e.kind, str(e), notify)

            transition(PipelineState.IDLE)
            result.success = True
            logger.info(f"{kind} completed ({len(result.content)} chars, delivered={result.delivered})")
            return result

        finally:
            if temp_dir is not None:
                shutil.rmtree(temp_dir, ignore_errors=True)
            self._record(kind, result, message.message_id if message else None)

    def _make_temp_dir(self) -> Path:
        root = Path(self.config.temp_dir)
        root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix='run-', dir=root))

    def _count_usage(self, template_ids: Sequence[str]) -> None:
        try:
            self.templates.increment_usage(template_ids)
        except Exception as e:
            logger.warning(f"Could not update template usage: {e}")

    async def process_prompt(self, prompt: str, message: Optional[Message] = None) -> AIResult:
        """Send a free-form prompt, with the message appended when one is given."""
        if not isinstance(prompt, str) or not prompt.strip() or len(prompt) > MAX_PROMPT_LENGTH:
            return AIResult.failure('Invalid prompt provided.', ErrorKind.INVALID_INPUT)
        if not self.rate_limiter.check(AI_PROCESS_KEY):
            return AIResult.failure(RATE_LIMITED_MESSAGE, ErrorKind.RATE_LIMITED)

        return await self.invoker.invoke(
            build_system_prompt(self.profile),
            build_user_content(prompt, message)
        )

    async def run_single_template(self, template_id: str, message_id: Optional[str] = None) -> AIResult:
        """Apply one template to a message and send it.

        The message travels inside the template through its placeholders,
        so no separate email block is appended.
        """
        try:
            templates = self._load_templates([template_id])
        except StorageError as e:
            return AIResult.failure(str(e), e.kind)
        if not templates:
            return AIResult.failure('Prompt not found', ErrorKind.INVALID_INPUT)
        if not self.rate_limiter.check(AI_PROCESS_KEY):
            return AIResult.failure(RATE_LIMITED_MESSAGE, ErrorKind.RATE_LIMITED)

        try:
            if message_id:
                message = await self.mail.fetch_message_by_id(message_id)
            else:
                message = await self.mail.fetch_active_message()
        except MailClientError as e:
            return AIResult.failure(str(e), ErrorKind.NOT_CONNECTED)

        self._count_usage([template_id])
        prompt = replace_placeholders(templates[0].template, message)
        return await self.invoker.invoke(build_system_prompt(self.profile), prompt)

    @staticmethod
    def _validate_reply(message_id, body) -> None:
        if not isinstance(message_id, str) or not message_id or len(message_id) > MAX_MESSAGE_ID_LENGTH:
            raise InvalidInputError('Invalid input provided.')
        if not isinstance(body, str) or len(body) > MAX_REPLY_LENGTH:
            raise InvalidInputError('Invalid input provided.')

    async def create_reply(self, message_id: str, body: str, reply_all: bool = False) -> PipelineResult:
        """Sanitize `body` and hand it to the mail client as a reply."""
        result = PipelineResult(success=False, state=PipelineState.IDLE)
        notify = self.on_state_change
        if not self.rate_limiter.check(MAIL_REPLY_KEY):
            return self._fail(result, ErrorKind.RATE_LIMITED, RATE_LIMITED_MESSAGE, notify)
        try:
            self._validate_reply(message_id, body)
        except InvalidInputError as e:
            return self._fail(result, e.kind, str(e), notify)

        result.content = sanitize(body)
        logger.info(f"Creating reply for {message_id[:20]} (reply_all={reply_all}, "
                    f"{len(body)} -> {len(result.content)} chars)")
        self._transition(result, PipelineState.DELIVERING, notify)
        try:
            await self.mail.create_reply(message_id, result.content, reply_all)
        except MailClientError as e:
            return self._fail(result, ErrorKind.DELIVERY_FAILED, f"Could not create reply: {e}", notify)

        self._transition(result, PipelineState.IDLE, notify)
        result.success = True
        result.delivered = True
        return result

    async def analyze_standalone_file(self, file_path, kind: AnalysisKind = AnalysisKind.SUMMARIZE) -> AIResult:
        """Extract a local file and analyze it with a kind-specific prompt."""
        if not self.rate_limiter.check(FILE_ANALYSIS_KEY):
            return AIResult.failure(RATE_LIMITED_MESSAGE, ErrorKind.RATE_LIMITED)
        try:
            kind = AnalysisKind(kind)
        except ValueError:
            return AIResult.failure(f"Unknown analysis type: {kind}", ErrorKind.INVALID_INPUT)

        logger.info(f"Analyzing file {Path(file_path).name} ({kind.value})")
        extracted = await self.extractor.extract(
            file_path, max_chars=self.config.extraction.file_analysis_max_chars
        )
        if not extracted.success:
            return AIResult.failure(extracted.error, extracted.error_kind or ErrorKind.EXTRACTION_FAILED)

        system_prompt = build_system_prompt(self.profile)
        if extracted.image_base64:
            return await self.invoker.invoke(
                system_prompt,
                get_image_analysis_prompt(kind),
                image=ImageInput(data=extracted.image_base64, mime_type=extracted.mime_type)
            )

        if extracted.is_scanned and extracted.warning:
            return AIResult.ok(
                f"{extracted.warning}\n\nExtracted text (if any):\n{extracted.text or '(none)'}"
            )

        return await self.invoker.invoke(system_prompt, get_file_analysis_prompt(extracted.text, kind))

    async def test_connection(self) -> AIResult:
        """Send a minimal prompt to verify the provider settings."""
        return await self.invoker.invoke(build_system_prompt(self.profile), CONNECTION_TEST_PROMPT)
