"""
Per-attachment text extraction and key-point summarization for Smart Shot.
"""
from pathlib import Path
from typing import Iterable, Optional

from ..ai.invoker import AIInvoker
from ..ai.prompts import get_key_info_prompt
from ..logger import get_logger
from ..models import AttachmentFile, AttachmentSummary
from ..rate_limiter import RateLimiter
from .extractor import ContentExtractor

logger = get_logger(__name__)

ATTACHMENT_SUMMARY_KEY = 'attachment-summary'

NO_TEXT_MARKER = '[Could not extract text from this file]'
SUMMARY_FAILED_MARKER = '[Error extracting key info]'
RATE_LIMITED_MARKER = '[Error: too many summary requests, attachment skipped]'


class AttachmentHarvester:
    """Turns a message's saved attachments into short AI summaries.

    Files are processed one at a time. A failure on one file becomes an
    error entry in its summary and never stops the rest of the batch.
    """

    def __init__(
        self,
        extractor: ContentExtractor,
        invoker: AIInvoker,
        rate_limiter: Optional[RateLimiter] = None,
        max_chars: Optional[int] = None,
    ):
        self.extractor = extractor
        self.invoker = invoker
        self.rate_limiter = rate_limiter
        self.max_chars = max_chars or extractor.settings.attachment_max_chars

    async def harvest(self, attachments: Iterable[AttachmentFile], system_prompt: str) -> list[AttachmentSummary]:
        """Summarize each attachment in order, then delete every local file.

        Args:
            attachments: Attachments already saved to local paths
            system_prompt: System prompt used for the summary calls

        Returns:
            One AttachmentSummary per attachment, in input order
        """
        attachments = list(attachments)
        summaries = []
        try:
            for index, attachment in enumerate(attachments, start=1):
                logger.info(f"Processing attachment {index}/{len(attachments)}: {attachment.filename}")
                summaries.append(await self._summarize(attachment, system_prompt))
        finally:
            remove_files(attachments)

        failed = sum(1 for s in summaries if not s.success)
        logger.info(f"Harvested {len(summaries)} attachments ({failed} with errors)")
        return summaries

    async def _summarize(self, attachment: AttachmentFile, system_prompt: str) -> AttachmentSummary:
        file_type = attachment.extension or 'unknown'
        try:
            extracted = await self.extractor.extract(attachment.path, max_chars=self.max_chars)
            if not extracted.success:
                return AttachmentSummary(
                    filename=attachment.filename,
                    summary=f"[Error: {extracted.error}]",
                    type=file_type,
                    success=False
                )

            text = extracted.text
            if not text.strip():
                return AttachmentSummary(
                    filename=attachment.filename,
                    summary=NO_TEXT_MARKER,
                    type=file_type,
                    success=False
                )

            if self.rate_limiter is not None and not self.rate_limiter.check(ATTACHMENT_SUMMARY_KEY):
                return AttachmentSummary(
                    filename=attachment.filename,
                    summary=RATE_LIMITED_MARKER,
                    type=file_type,
                    char_count=len(text),
                    success=False
                )

            prompt = get_key_info_prompt(attachment.filename, file_type, text)
            result = await self.invoker.invoke(system_prompt, prompt)
            if not result.success:
                logger.warning(f"Key info extraction failed for {attachment.filename}: {result.error}")

            return AttachmentSummary(
                filename=attachment.filename,
                summary=result.content if result.success else SUMMARY_FAILED_MARKER,
                type=file_type,
                char_count=len(text),
                success=result.success
            )

        except Exception as e:
            logger.error(f"Error processing attachment {attachment.filename}: {e}")
            return AttachmentSummary(
                filename=attachment.filename or 'Unknown',
                summary=f"[Error: {e}]",
                type=file_type,
                success=False
            )


def remove_files(attachments: Iterable[AttachmentFile]) -> None:
    """Delete attachment files, ignoring any that are already gone or locked."""
    for attachment in attachments:
        try:
            Path(attachment.path).unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Could not remove temp file {attachment.path}: {e}")
