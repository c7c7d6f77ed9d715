import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from github_dl.api.base import BaseApiClient
from github_dl.auth import discover_token
from github_dl.constants import (
    API_URL,
    DEFAULT_CONCURRENCY,
    DEFAULT_TIMEOUT,
    MAX_RATE_LIMIT_WAIT,
)


class ApiSchema(BaseModel):

    type: str = "github"
    base_url: str = API_URL
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    # None waits for the reset however long it is
    max_rate_limit_wait: float | None = Field(default=MAX_RATE_LIMIT_WAIT, ge=0)


class ConfigSchema(BaseModel):

    api: ApiSchema = ApiSchema()
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, gt=0)
    listing_concurrency: int | None = Field(default=None, gt=0)


def default_config_path() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(config_home) / "github-dl" / "config.yaml"


class Config:
    """
    Config file parser.

    The file is optional; without one every setting takes its default. The
    token is resolved once here and handed to the API client.
    """

    def __init__(self, config_path: Path | None = None, token: str | None = None):
        if config_path is None:
            candidate = default_config_path()
            config_path = candidate if candidate.is_file() else None
        self.config_path = config_path

        # Read main config in
        if self.config_path is not None:
            with open(self.config_path) as fh:
                self.config_data = ConfigSchema(**(yaml.safe_load(fh.read()) or {}))
        else:
            self.config_data = ConfigSchema()

        self.token = token if token is not None else discover_token()

    @property
    def concurrency(self) -> int:
        return self.config_data.concurrency

    @property
    def listing_concurrency(self) -> int:
        return self.config_data.listing_concurrency or self.config_data.concurrency

    def api_client(self) -> BaseApiClient:
        """
        Builds the configured API client implementation.
        """
        # Implementations register on import
        import github_dl.api.github  # noqa: F401

        api = self.config_data.api
        client_class = BaseApiClient.implementation_get(api.type)
        return client_class(
            token=self.token,
            base_url=api.base_url,
            timeout=api.timeout,
            max_rate_limit_wait=api.max_rate_limit_wait,
        )
