"""
Gmail implementation of the mail-client collaborator.
Handles message retrieval, attachment download and draft replies.
"""
import asyncio
import base64
import html
import re
from datetime import datetime
from email.mime.text import MIMEText
from email.utils import getaddresses, parseaddr
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import httplib2
import pytz
from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import Resource
from googleapiclient.errors import HttpError

from ..config import GmailConfig, config
from ..logger import get_logger
from ..mail_client import MailClient, MailClientError
from ..models import AttachmentFile, Message
from .auth import GmailAuthenticator

logger = get_logger(__name__)

_TAG = re.compile(r'<[^>]+>')

# Socket timeouts, resets, token refresh and httplib2 failures
TRANSPORT_ERRORS = (OSError, GoogleAuthError, httplib2.HttpLib2Error)


def body_to_html(text: str) -> str:
    """Escape plain text and turn blank-line paragraphs and line breaks into HTML."""
    paragraphs = [p for p in re.split(r'\n\s*\n', text.replace('\r\n', '\n')) if p.strip()]
    return ''.join(
        f"<p>{html.escape(p).replace(chr(10), '<br>')}</p>" for p in paragraphs
    )


def _walk_parts(payload: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    yield payload
    for part in payload.get('parts', []) or []:
        yield from _walk_parts(part)


def _decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + '=' * (-len(data) % 4))


def _safe_filename(name: str, destination_dir: Path) -> Path:
    base = Path(name).name or 'attachment'
    candidate = destination_dir / base
    counter = 1
    while candidate.exists():
        candidate = destination_dir / f"{Path(base).stem}_{counter}{Path(base).suffix}"
        counter += 1
    return candidate


class GmailMailClient(MailClient):
    """Mail client backed by the Gmail API."""

    def __init__(self, service: Optional[Resource] = None, settings: Optional[GmailConfig] = None):
        """Initialize with an authenticated Gmail resource, authenticating if none is given."""
        self.settings = settings or config.gmail
        self._service = service

    @property
    def service(self) -> Resource:
        if self._service is None:
            try:
                self._service = GmailAuthenticator(self.settings).get_gmail_service()
            except Exception as e:
                raise MailClientError(f"Gmail is not available: {e}") from e
        return self._service

    async def _call(self, action: str, func, *args):
        """Run a blocking Gmail call in a worker thread, reporting any transport failure as MailClientError."""
        try:
            return await asyncio.to_thread(func, *args)
        except MailClientError:
            raise
        except TRANSPORT_ERRORS as error:
            logger.error(f"Gmail request failed while trying to {action}: {error}")
            raise MailClientError(f"Could not {action}: {error}") from error

    async def fetch_active_message(self) -> Message:
        return await self._call("fetch the active email", self._fetch_active_message)

    async def fetch_message_by_id(self, message_id: str) -> Message:
        return await self._call("load message", self._fetch_message, message_id)

    async def extract_attachments(self, message_id: str, destination_dir: Path) -> List[AttachmentFile]:
        return await self._call("download attachments", self._extract_attachments, message_id, Path(destination_dir))

    async def create_reply(self, message_id: str, body_text: str, reply_all: bool = False) -> None:
        await self._call("create reply", self._create_reply, message_id, body_text, reply_all)

    def _fetch_active_message(self) -> Message:
        try:
            results = self.service.users().messages().list(
                userId='me',
                q=self.settings.active_query,
                maxResults=1
            ).execute()
        except HttpError as error:
            logger.error(f"Error fetching active email: {error}")
            raise MailClientError(f"Could not reach Gmail: {error}") from error

        messages = results.get('messages', [])
        if not messages:
            raise MailClientError('No email selected')
        return self._fetch_message(messages[0]['id'])

    def _get_raw_message(self, message_id: str) -> Dict[str, Any]:
        try:
            return self.service.users().messages().get(
                userId='me',
                id=message_id,
                format='full'
            ).execute()
        except HttpError as error:
            logger.error(f"Error getting email data for {message_id}: {error}")
            raise MailClientError(f"Could not load message {message_id}: {error}") from error

    def _fetch_message(self, message_id: str) -> Message:
        return self._parse_message(self._get_raw_message(message_id))

    def _parse_message(self, msg: Dict[str, Any]) -> Message:
        payload = msg.get('payload', {}) or {}
        headers = {h.get('name', '').lower(): h.get('value', '') for h in payload.get('headers', [])}
        sender_name, sender_email = parseaddr(headers.get('from', ''))

        plain_parts, html_parts, attachment_count = [], [], 0
        for part in _walk_parts(payload):
            if part.get('filename'):
                attachment_count += 1
                continue
            data = (part.get('body') or {}).get('data')
            if not data:
                continue
            try:
                text = _decode(data).decode('utf-8', errors='replace')
            except (ValueError, TypeError):
                continue
            if part.get('mimeType') == 'text/html':
                html_parts.append(html.unescape(_TAG.sub('', text)))
            else:
                plain_parts.append(text)

        received_time = None
        try:
            timestamp = int(msg['internalDate']) / 1000
            received_time = datetime.fromtimestamp(timestamp, tz=pytz.UTC)
        except (KeyError, TypeError, ValueError):
            pass

        labels = msg.get('labelIds', []) or []
        return Message(
            message_id=msg.get('id', ''),
            subject=headers.get('subject', '(No Subject)'),
            sender_name=sender_name,
            sender_email=sender_email,
            to=headers.get('to', ''),
            cc=headers.get('cc', ''),
            body=''.join(plain_parts) or ''.join(html_parts),
            received_time=received_time,
            attachment_count=attachment_count,
            is_read='UNREAD' not in labels,
            importance='high' if 'IMPORTANT' in labels else 'normal',
            thread_id=msg.get('threadId')
        )

    def _extract_attachments(self, message_id: str, destination_dir: Path) -> List[AttachmentFile]:
        msg = self._get_raw_message(message_id)
        destination_dir.mkdir(parents=True, exist_ok=True)

        saved = []
        for part in _walk_parts(msg.get('payload', {}) or {}):
            filename = part.get('filename')
            if not filename:
                continue
            body = part.get('body') or {}
            try:
                data = body.get('data')
                if not data and body.get('attachmentId'):
                    data = self.service.users().messages().attachments().get(
                        userId='me',
                        messageId=message_id,
                        id=body['attachmentId']
                    ).execute().get('data')
                if not data:
                    logger.warning(f"Attachment {filename} has no data, skipping")
                    continue

                content = _decode(data)
                target = _safe_filename(filename, destination_dir)
                target.write_bytes(content)
                saved.append(AttachmentFile(filename=filename, path=target, size=len(content)))
            except HttpError as error:
                raise MailClientError(f"Could not download attachment {filename}: {error}") from error

        logger.info(f"Saved {len(saved)} attachments for message {message_id[:20]}")
        return saved

    def _own_address(self) -> str:
        try:
            return self.service.users().getProfile(userId='me').execute().get('emailAddress', '').lower()
        except HttpError:
            return ''

    def _create_reply(self, message_id: str, body_text: str, reply_all: bool) -> None:
        msg = self._get_raw_message(message_id)
        headers = {h.get('name', '').lower(): h.get('value', '') for h in msg.get('payload', {}).get('headers', [])}

        reply = MIMEText(body_to_html(body_text), 'html', 'utf-8')
        reply['To'] = headers.get('reply-to') or headers.get('from', '')
        if reply_all:
            own = self._own_address()
            recipients = getaddresses([headers.get('to', ''), headers.get('cc', '')])
            cc = [addr for _, addr in recipients if addr and addr.lower() != own]
            if cc:
                reply['Cc'] = ', '.join(cc)

        subject = headers.get('subject', '')
        reply['Subject'] = subject if subject.lower().startswith('re:') else f"Re: {subject}"
        if headers.get('message-id'):
            reply['In-Reply-To'] = headers['message-id']
            reply['References'] = f"{headers.get('references', '')} {headers['message-id']}".strip()

        raw = base64.urlsafe_b64encode(reply.as_bytes()).decode()
        try:
            self.service.users().drafts().create(
                userId='me',
                body={'message': {'raw': raw, 'threadId': msg.get('threadId')}}
            ).execute()
        except HttpError as error:
            logger.error(f"Error creating reply draft for {message_id}: {error}")
            raise MailClientError(f"Could not create reply: {error}") from error
        logger.info(f"Reply draft created for message {message_id[:20]}")
