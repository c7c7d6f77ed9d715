import pytest
from pydantic import ValidationError

from github_dl.api.github import GitHubApiClient
from github_dl.config import Config

from conftest import FakeApiClient


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """
    Keep the user's real config file out of the tests.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))


class TestConfig:
    """
    Tests for the optional YAML config file.
    """

    def test_defaults_without_file(self):
        config = Config(token="t")
        assert config.config_path is None
        assert config.concurrency == 5
        assert config.listing_concurrency == 5

    def test_default_client_is_github(self):
        client = Config(token="abc").api_client()
        assert isinstance(client, GitHubApiClient)
        assert client.session.headers["Authorization"] == "Bearer abc"
        assert client.base_url == "https://api.github.com"

    def test_reads_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "api:\n"
            "  base_url: https://ghe.example.com/api/v3\n"
            "  timeout: 5\n"
            "concurrency: 8\n"
            "listing_concurrency: 2\n"
        )
        config = Config(path, token="")
        assert config.concurrency == 8
        assert config.listing_concurrency == 2
        client = config.api_client()
        assert client.base_url == "https://ghe.example.com/api/v3"
        assert client.timeout == 5
        assert "Authorization" not in client.session.headers

    def test_rate_limit_wait(self, tmp_path):
        assert Config(token="t").api_client().max_rate_limit_wait == 3660
        path = tmp_path / "config.yaml"
        path.write_text("api:\n  max_rate_limit_wait: null\n")
        assert Config(path, token="t").api_client().max_rate_limit_wait is None

    def test_default_location(self, tmp_path):
        path = tmp_path / "xdg" / "github-dl" / "config.yaml"
        path.parent.mkdir(parents=True)
        path.write_text("concurrency: 3\n")
        assert Config(token="t").concurrency == 3

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert Config(path, token="t").concurrency == 5

    def test_client_type_from_registry(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("api:\n  type: fake\n")
        assert isinstance(Config(path, token="t").api_client(), FakeApiClient)

    def test_rejects_bad_concurrency(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("concurrency: 0\n")
        with pytest.raises(ValidationError):
            Config(path, token="t")

    def test_token_discovered_when_not_given(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        assert Config().token == "from-env"
