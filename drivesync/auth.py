"""Credential loading for the Drive API."""

import json
import logging
from pathlib import Path
from typing import Union

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def load_access_token(token_file: Union[str, Path]) -> str:
    """Read a previously authorized access token from disk.

    The token file is a JSON object holding an ``access_token`` (or
    ``token``) entry. Obtaining and refreshing it is done outside of
    drivesync.

    Args:
        token_file: Path of the token JSON file

    Returns:
        Bearer token for the Drive API

    Raises:
        ConfigurationError: If the file is missing, malformed or has no token
    """
    path = Path(token_file).expanduser()
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"Authentication not configured: token file '{path}' not found"
        ) from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Could not read token file '{path}': {e}") from e

    token = None
    if isinstance(data, dict):
        token = data.get("access_token") or data.get("token")
    if not token or not isinstance(token, str):
        raise ConfigurationError(f"Token file '{path}' does not contain a token")

    logger.debug(f"Loaded access token from {path}")
    return token
