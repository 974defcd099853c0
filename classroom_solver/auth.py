import logging
import os
from typing import Callable, Optional

import requests
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import Settings
from .errors import AuthError, ConfigurationError
from .models import UserProfile

logger = logging.getLogger(__name__)

# Scopes define the permissions the app requests from the user.
SCOPES = [
    'https://www.googleapis.com/auth/classroom.courses.readonly',
    'https://www.googleapis.com/auth/classroom.coursework.me.readonly',
    'https://www.googleapis.com/auth/classroom.coursework.me',
    'https://www.googleapis.com/auth/drive.file',  # Required to upload files for submission
    'https://www.googleapis.com/auth/userinfo.profile',
    'https://www.googleapis.com/auth/userinfo.email',
    'openid',
]

REVOKE_URL = 'https://oauth2.googleapis.com/revoke'


class AuthService:
    """Owns the OAuth credentials and the signed-in user's profile."""

    def __init__(
        self,
        settings: Settings,
        on_login: Optional[Callable[[UserProfile], None]] = None,
        on_logout: Optional[Callable[[], None]] = None,
    ):
        self.settings = settings
        self.creds: Optional[Credentials] = None
        self.profile: Optional[UserProfile] = None
        self._on_login = on_login or (lambda profile: None)
        self._on_logout = on_logout or (lambda: None)

    @property
    def credentials(self) -> Optional[Credentials]:
        return self.creds

    @property
    def is_signed_in(self) -> bool:
        return self.creds is not None and self.creds.valid

    def _check_configuration(self):
        has_secrets_file = os.path.exists(self.settings.credentials_file)
        has_token = os.path.exists(self.settings.token_file)
        if not (has_secrets_file or has_token or self.settings.has_client_config()):
            raise ConfigurationError(
                f"OAuth client is not configured. Download credentials.json from the Google "
                f"Cloud Console and save it as '{self.settings.credentials_file}', or set "
                "GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET_VALUE."
            )

    def init_client(self) -> Optional[Credentials]:
        """Loads and refreshes a stored token. Returns None when a sign-in is needed."""
        self._check_configuration()

        creds = None
        token_file = self.settings.token_file
        if os.path.exists(token_file):
            try:
                creds = Credentials.from_authorized_user_file(token_file, SCOPES)
            except ValueError as e:
                logger.warning("Stored token is unreadable, please sign in again: %s", e)
                os.remove(token_file)

        if creds and not creds.valid:
            if creds.expired and creds.refresh_token:
                logger.info("Refreshing expired credentials")
                try:
                    creds.refresh(Request())
                    self._save_token(creds)
                except RefreshError as e:
                    logger.warning("Error refreshing token, please sign in again: %s", e)
                    creds = None
                    os.remove(token_file)
            else:
                creds = None

        self.creds = creds
        return creds

    def _client_flow(self) -> InstalledAppFlow:
        if os.path.exists(self.settings.credentials_file):
            return InstalledAppFlow.from_client_secrets_file(self.settings.credentials_file, SCOPES)
        if self.settings.has_client_config():
            client_config = {
                'installed': {
                    'client_id': self.settings.client_id,
                    'client_secret': self.settings.client_secret,
                    'auth_uri': 'https://accounts.google.com/o/oauth2/auth',
                    'token_uri': 'https://oauth2.googleapis.com/token',
                    'redirect_uris': ['http://localhost'],
                }
            }
            return InstalledAppFlow.from_client_config(client_config, SCOPES)
        raise ConfigurationError(
            f"Credentials file '{self.settings.credentials_file}' not found. "
            "Download it from Google Cloud Console."
        )

    def _save_token(self, creds: Credentials):
        with open(self.settings.token_file, 'w') as token:
            token.write(creds.to_json())

    def sign_in(self) -> UserProfile:
        """Runs the browser consent flow, stores the token and fetches the profile."""
        if not self.is_signed_in:
            flow = self._client_flow()
            self.creds = flow.run_local_server(port=0)
            self._save_token(self.creds)
            logger.info("Authentication successful")
        return self.fetch_user_profile()

    def sign_out(self):
        """Revokes the token with Google and forgets it locally."""
        token = self.get_access_token()
        if not token:
            return
        try:
            response = requests.post(
                REVOKE_URL,
                params={'token': token},
                headers={'content-type': 'application/x-www-form-urlencoded'},
                timeout=10,
            )
            if response.status_code != 200:
                logger.warning("Token revocation returned HTTP %s", response.status_code)
        except requests.RequestException as e:
            logger.warning("Could not revoke token: %s", e)

        if os.path.exists(self.settings.token_file):
            os.remove(self.settings.token_file)
        self.creds = None
        self.profile = None
        self._on_logout()

    def fetch_user_profile(self) -> UserProfile:
        if self.creds is None:
            raise AuthError("Not signed in.")
        try:
            service = build('oauth2', 'v2', credentials=self.creds)
            info = service.userinfo().get().execute()
        except HttpError as e:
            logger.error("Error fetching user profile: %s", e)
            self.sign_out()
            raise AuthError("Could not fetch your Google profile. You have been signed out.") from e

        self.profile = UserProfile.from_userinfo(info)
        self._on_login(self.profile)
        return self.profile

    def get_access_token(self) -> Optional[str]:
        return self.creds.token if self.creds else None
