import base64
import email
import shutil
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytz
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from email_companion.gmail.service import GmailMailClient, body_to_html
from email_companion.mail_client import MailClientError


def b64(text):
    data = text.encode('utf-8') if isinstance(text, str) else text
    return base64.urlsafe_b64encode(data).decode('ascii')


class TestGmailMailClient(unittest.IsolatedAsyncioTestCase):
    """Test cases for GmailMailClient"""

    def setUp(self):
        # Create a mock Gmail service
        self.mock_service = MagicMock()
        self.messages = self.mock_service.users.return_value.messages.return_value
        self.client = GmailMailClient(service=self.mock_service)

        self.raw_message = {
            'id': 'abc123',
            'threadId': 'thread-9',
            'internalDate': '1703606400000',
            'labelIds': ['INBOX', 'UNREAD', 'IMPORTANT'],
            'payload': {
                'mimeType': 'multipart/mixed',
                'headers': [
                    {'name': 'From', 'value': 'Dana Reyes <dana@example.com>'},
                    {'name': 'To', 'value': 'me@example.com, team@example.com'},
                    {'name': 'Cc', 'value': 'finance@example.com'},
                    {'name': 'Subject', 'value': 'Q3 Budget'},
                    {'name': 'Message-ID', 'value': '<orig@mail.example.com>'},
                ],
                'parts': [
                    {'mimeType': 'text/plain', 'filename': '', 'body': {'data': b64('Please review by Friday')}},
                    {'mimeType': 'text/html', 'filename': '', 'body': {'data': b64('<p>Please review</p>')}},
                    {'mimeType': 'application/pdf', 'filename': 'budget.pdf',
                     'body': {'attachmentId': 'att-1', 'size': 4}},
                ]
            }
        }
        self.messages.get.return_value.execute.return_value = self.raw_message

    async def test_fetch_active_message(self):
        self.messages.list.return_value.execute.return_value = {'messages': [{'id': 'abc123'}]}

        message = await self.client.fetch_active_message()

        self.messages.list.assert_called_once_with(userId='me', q='in:inbox', maxResults=1)
        self.assertEqual(message.message_id, 'abc123')
        self.assertEqual(message.subject, 'Q3 Budget')
        self.assertEqual(message.sender_name, 'Dana Reyes')
        self.assertEqual(message.sender_email, 'dana@example.com')
        self.assertEqual(message.cc, 'finance@example.com')
        self.assertEqual(message.body, 'Please review by Friday')
        self.assertEqual(message.attachment_count, 1)
        self.assertFalse(message.is_read)
        self.assertEqual(message.importance, 'high')
        self.assertEqual(message.thread_id, 'thread-9')
        self.assertEqual(message.received_time, datetime(2023, 12, 26, 16, 0, tzinfo=pytz.UTC))

    async def test_no_active_message(self):
        self.messages.list.return_value.execute.return_value = {}

        with self.assertRaises(MailClientError):
            await self.client.fetch_active_message()

    async def test_http_error_becomes_mail_client_error(self):
        self.messages.get.return_value.execute.side_effect = HttpError(
            resp=MagicMock(status=404), content=b'Not Found'
        )

        with self.assertRaises(MailClientError):
            await self.client.fetch_message_by_id('missing')

    async def test_html_only_message(self):
        self.raw_message['payload'] = {
            'mimeType': 'text/html',
            'headers': [{'name': 'Subject', 'value': 'Hi'}],
            'body': {'data': b64('<div>Tom &amp; Jerry</div>')}
        }

        message = await self.client.fetch_message_by_id('abc123')

        self.assertEqual(message.body, 'Tom & Jerry')
        self.assertEqual(message.sender_email, '')

    async def test_extract_attachments(self):
        temp_dir = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, temp_dir, ignore_errors=True)
        self.messages.attachments.return_value.get.return_value.execute.return_value = {'data': b64(b'%PDF')}

        files = await self.client.extract_attachments('abc123', temp_dir)

        self.assertEqual(len(files), 1)
        self.assertEqual(files[0].filename, 'budget.pdf')
        self.assertEqual(Path(files[0].path).read_bytes(), b'%PDF')
        self.assertEqual(files[0].size, 4)
        self.messages.attachments.return_value.get.assert_called_once_with(
            userId='me', messageId='abc123', id='att-1'
        )

    async def test_attachment_names_cannot_escape_destination(self):
        temp_dir = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, temp_dir, ignore_errors=True)
        self.raw_message['payload']['parts'][2]['filename'] = '../../evil.pdf'
        self.messages.attachments.return_value.get.return_value.execute.return_value = {'data': b64(b'%PDF')}

        files = await self.client.extract_attachments('abc123', temp_dir)

        self.assertEqual(Path(files[0].path).parent, temp_dir)

    async def test_create_reply_all(self):
        drafts = self.mock_service.users.return_value.drafts.return_value
        self.mock_service.users.return_value.getProfile.return_value.execute.return_value = {
            'emailAddress': 'me@example.com'
        }

        await self.client.create_reply('abc123', 'Thanks <team>\nSee you\n\nBest', reply_all=True)

        body = drafts.create.call_args.kwargs['body']
        self.assertEqual(body['message']['threadId'], 'thread-9')
        raw = base64.urlsafe_b64decode(body['message']['raw'])
        sent = email.message_from_bytes(raw)
        self.assertEqual(sent['To'], 'Dana Reyes <dana@example.com>')
        self.assertEqual(sent['Cc'], 'team@example.com, finance@example.com')
        self.assertEqual(sent['Subject'], 'Re: Q3 Budget')
        self.assertEqual(sent['In-Reply-To'], '<orig@mail.example.com>')
        html = sent.get_payload(decode=True).decode('utf-8')
        self.assertEqual(html, '<p>Thanks &lt;team&gt;<br>See you</p><p>Best</p>')

    async def test_create_reply_failure(self):
        drafts = self.mock_service.users.return_value.drafts.return_value
        drafts.create.return_value.execute.side_effect = HttpError(resp=MagicMock(status=500), content=b'err')

        with self.assertRaises(MailClientError):
            await self.client.create_reply('abc123', 'hello')

    async def test_reply_timeout_becomes_mail_client_error(self):
        drafts = self.mock_service.users.return_value.drafts.return_value
        drafts.create.return_value.execute.side_effect = TimeoutError('timed out')

        with self.assertRaises(MailClientError) as ctx:
            await self.client.create_reply('abc123', 'hello')
        self.assertIsInstance(ctx.exception.__cause__, TimeoutError)

    async def test_connection_reset_becomes_mail_client_error(self):
        self.messages.list.return_value.execute.side_effect = ConnectionResetError('reset')

        with self.assertRaises(MailClientError):
            await self.client.fetch_active_message()

    async def test_token_refresh_failure_becomes_mail_client_error(self):
        self.messages.get.return_value.execute.side_effect = RefreshError('invalid_grant')

        with self.assertRaises(MailClientError):
            await self.client.fetch_message_by_id('abc123')

    async def test_authentication_failure(self):
        with patch('email_companion.gmail.service.GmailAuthenticator') as mock_auth:
            mock_auth.side_effect = ValueError('GMAIL_CREDENTIALS_FILE is not configured')
            client = GmailMailClient()

            with self.assertRaises(MailClientError):
                await client.fetch_active_message()


class TestBodyToHtml(unittest.TestCase):

    def test_escapes_and_breaks(self):
        self.assertEqual(body_to_html('a & b\nc\n\n\nd'), '<p>a &amp; b<br>c</p><p>d</p>')


if __name__ == '__main__':
    unittest.main()
