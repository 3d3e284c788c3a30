"""
Gmail authentication module for handling OAuth2 flow.
"""
from pathlib import Path
from typing import Optional

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from ..config import GmailConfig, config
from ..logger import get_logger

logger = get_logger(__name__)


class GmailAuthenticator:
    """Handles Gmail API authentication using OAuth2."""

    def __init__(self, settings: Optional[GmailConfig] = None):
        """Initialize the Gmail authenticator with configuration."""
        settings = settings or config.gmail
        if not settings.credentials_file:
            raise ValueError('GMAIL_CREDENTIALS_FILE is not configured')
        self.credentials_file = Path(settings.credentials_file)
        # Default token file location if not specified
        token_file = settings.token_file or (config.data_dir / 'gmail-token.json')
        self.token_file = Path(token_file)
        self.scopes = settings.scopes

    def get_gmail_service(self):
        """
        Authenticate and return Gmail service object.

        Returns:
            googleapiclient.discovery.Resource: Authenticated Gmail service
        """
        creds = self._get_credentials()
        logger.info("Creating Gmail service with authenticated credentials")
        return build('gmail', 'v1', credentials=creds)

    def _get_credentials(self) -> Credentials:
        """
        Get valid credentials, refreshing or running auth flow if necessary.
        """
        creds: Optional[Credentials] = None

        if self.token_file.exists():
            try:
                creds = Credentials.from_authorized_user_file(
                    str(self.token_file), self.scopes
                )
                logger.debug("Loaded existing credentials from token file")
            except Exception as e:
                logger.warning(f"Error loading credentials from token file: {e}")
                creds = None

        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                logger.info("Refreshing expired Gmail credentials")
                creds.refresh(Request())
            else:
                logger.info("Starting OAuth flow to get new credentials")
                flow = InstalledAppFlow.from_client_secrets_file(
                    str(self.credentials_file), self.scopes
                )
                creds = flow.run_local_server(port=0)

            self._save_credentials(creds)

        return creds

    def _save_credentials(self, creds: Credentials) -> None:
        """Save credentials to token file."""
        try:
            self.token_file.parent.mkdir(parents=True, exist_ok=True)
            self.token_file.write_text(creds.to_json())
            # Secure the token file
            self.token_file.chmod(0o600)
            logger.info(f"Saved credentials to {self.token_file}")
        except OSError as e:
            logger.error(f"Error saving token file: {e}")
