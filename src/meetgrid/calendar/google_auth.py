"""Google OAuth authentication for the Calendar API (read-only)."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]


def _load_json_from_env_or_file(env_var: str, file_path: str) -> dict | None:
    """Load JSON from a base64-encoded (or plain) env var, falling back to a file."""
    env_value = os.environ.get(env_var)
    if env_value:
        try:
            return json.loads(base64.b64decode(env_value, validate=True))
        except (binascii.Error, ValueError):
            try:
                return json.loads(env_value)
            except ValueError:
                logger.warning(f"Failed to parse {env_var} env var")
    path = Path(file_path)
    if path.exists():
        return json.loads(path.read_text())
    return None


def get_google_credentials(
    credentials_path: str = "credentials.json",
    token_path: str = "token.json",
) -> Credentials:
    """Get or refresh Google OAuth credentials.

    GOOGLE_TOKEN_JSON / GOOGLE_CREDENTIALS_JSON env vars take precedence over
    the files, for containerized deployments.
    """
    creds = None

    token_data = _load_json_from_env_or_file("GOOGLE_TOKEN_JSON", token_path)
    if token_data:
        creds = Credentials(
            token=token_data.get("token"),
            refresh_token=token_data.get("refresh_token"),
            token_uri=token_data.get("token_uri", "https://oauth2.googleapis.com/token"),
            client_id=token_data.get("client_id"),
            client_secret=token_data.get("client_secret"),
            scopes=token_data.get("scopes", SCOPES),
        )

    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            logger.info("Refreshing expired Google token")
            creds.refresh(Request())
            _save_token(creds, token_path)
        else:
            creds_data = _load_json_from_env_or_file("GOOGLE_CREDENTIALS_JSON", credentials_path)
            if not creds_data:
                raise FileNotFoundError(
                    f"Google credentials not found in GOOGLE_CREDENTIALS_JSON env var or {credentials_path}"
                )
            flow = InstalledAppFlow.from_client_config(creds_data, SCOPES)
            creds = flow.run_local_server(port=0)
            _save_token(creds, token_path)

    return creds


def _save_token(creds: Credentials, token_path: str) -> None:
    token_data = {
        "token": creds.token,
        "refresh_token": creds.refresh_token,
        "token_uri": creds.token_uri,
        "client_id": creds.client_id,
        "client_secret": creds.client_secret,
        "scopes": list(creds.scopes or SCOPES),
    }
    try:
        Path(token_path).write_text(json.dumps(token_data, indent=2))
        logger.info(f"Token saved to {token_path}")
    except OSError:
        logger.warning(f"Could not save token to {token_path}")
