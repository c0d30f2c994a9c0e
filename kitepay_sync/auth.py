"""Gmail OAuth credentials: load the authorized token, or run the
installed-app flow once to create it.
"""

from __future__ import annotations

from pathlib import Path

import structlog
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from .config import GmailConfig
from .errors import MissingCredentialsError

logger = structlog.get_logger()

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.modify",
]


def load_credentials(config: GmailConfig) -> Credentials:
    """Load the authorized-user token, refreshing it if expired.

    A refreshed token is written back to ``config.token_path``.  Raises
    :class:`MissingCredentialsError` when no token file exists; run the
    ``authorize`` command first.
    """
    token_path = Path(config.token_path)
    if not token_path.exists():
        raise MissingCredentialsError(
            f"Token file {token_path} not found; run the authorize command first"
        )

    creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)
    if creds.expired and creds.refresh_token:
        creds.refresh(Request())
        token_path.write_text(creds.to_json())
        logger.info("gmail_token_refreshed", token_path=str(token_path))
    return creds


def authorize(config: GmailConfig, *, port: int = 3000) -> Credentials:
    """Run the local-server OAuth flow and save the resulting token."""
    secrets_path = Path(config.credentials_path)
    if not secrets_path.exists():
        raise MissingCredentialsError(f"OAuth client secrets {secrets_path} not found")

    flow = InstalledAppFlow.from_client_secrets_file(str(secrets_path), SCOPES)
    creds = flow.run_local_server(port=port, access_type="offline", prompt="consent")
    Path(config.token_path).write_text(creds.to_json())
    logger.info("gmail_token_saved", token_path=config.token_path)
    return creds
