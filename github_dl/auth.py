import logging
import os
from collections.abc import Mapping
from pathlib import Path

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

TOKEN_KEY = "GITHUB_TOKEN"


def find_env_file(start: Path) -> Path | None:
    """
    Returns the nearest .env file in start or one of its parents.
    """
    path = start.resolve()
    while True:
        candidate = path / ".env"
        if candidate.is_file():
            return candidate
        # Check if we've reached the root directory
        if path.parent == path:
            return None
        path = path.parent


def discover_token(
    start: Path | None = None, environ: Mapping[str, str] | None = None
) -> str | None:
    """
    Looks up GITHUB_TOKEN, first in the process environment and then in the
    nearest .env file. Returns None (meaning unauthenticated) if neither has a
    non-empty value.
    """
    environ = os.environ if environ is None else environ
    token = environ.get(TOKEN_KEY)
    if token:
        logger.debug(f"Using {TOKEN_KEY} from the environment")
        return token
    env_file = find_env_file(start or Path.cwd())
    if env_file is None:
        return None
    token = dotenv_values(env_file).get(TOKEN_KEY)
    if token:
        logger.debug(f"Using {TOKEN_KEY} from {env_file}")
        return token
    return None
