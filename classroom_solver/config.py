"""
Settings for the Classroom Solver CLI.

Values come from the environment, optionally seeded from a ``.env`` file:

   GEMINI_API_KEY=your_api_key_here
   GOOGLE_CLIENT_SECRET=credentials.json
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

DEFAULT_MODEL = 'gemini-2.5-flash'


def is_placeholder(value: Optional[str]) -> bool:
    """True for unset values and the ``YOUR_...`` placeholders shipped in examples."""
    return not value or value.strip().startswith('YOUR_')


@dataclass
class Settings:
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_MODEL
    credentials_file: str = 'credentials.json'
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    token_file: str = 'token.json'
    output_dir: str = 'output'
    fonts_dir: str = 'fonts'
    log_level: str = 'WARNING'

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        return cls(
            gemini_api_key=os.getenv('GEMINI_API_KEY') or os.getenv('API_KEY'),
            gemini_model=os.getenv('GEMINI_MODEL', DEFAULT_MODEL),
            credentials_file=os.getenv('GOOGLE_CLIENT_SECRET', 'credentials.json'),
            client_id=os.getenv('GOOGLE_CLIENT_ID'),
            client_secret=os.getenv('GOOGLE_CLIENT_SECRET_VALUE'),
            token_file=os.getenv('CLASSROOM_SOLVER_TOKEN', 'token.json'),
            output_dir=os.getenv('CLASSROOM_SOLVER_OUTPUT', 'output'),
            fonts_dir=os.getenv('HANDWRITING_FONTS_DIR', 'fonts'),
            log_level=os.getenv('CLASSROOM_SOLVER_LOG_LEVEL', 'WARNING').upper(),
        )

    def require_gemini_key(self) -> str:
        if is_placeholder(self.gemini_api_key):
            raise ConfigurationError(
                "Missing GEMINI_API_KEY in environment variables (.env file)."
            )
        return self.gemini_api_key

    def has_client_config(self) -> bool:
        return not is_placeholder(self.client_id) and not is_placeholder(self.client_secret)
