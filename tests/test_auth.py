from github_dl.auth import discover_token, find_env_file


class TestDiscoverToken:
    """
    Tests for finding GITHUB_TOKEN in the environment or a .env file.
    """

    def test_environment_wins(self, tmp_path):
        (tmp_path / ".env").write_text("GITHUB_TOKEN=from-file\n")
        token = discover_token(tmp_path, environ={"GITHUB_TOKEN": "from-env"})
        assert token == "from-env"

    def test_env_file_in_start_directory(self, tmp_path):
        (tmp_path / ".env").write_text("OTHER=1\nGITHUB_TOKEN=from-file\n")
        assert discover_token(tmp_path, environ={}) == "from-file"

    def test_env_file_in_ancestor(self, tmp_path):
        (tmp_path / ".env").write_text('GITHUB_TOKEN="quoted"\n')
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_env_file(nested) == (tmp_path / ".env").resolve()
        assert discover_token(nested, environ={}) == "quoted"

    def test_nearest_env_file_is_used(self, tmp_path):
        (tmp_path / ".env").write_text("GITHUB_TOKEN=outer\n")
        nested = tmp_path / "inner"
        nested.mkdir()
        (nested / ".env").write_text("GITHUB_TOKEN=inner\n")
        assert discover_token(nested, environ={}) == "inner"

    def test_empty_values_mean_unauthenticated(self, tmp_path):
        (tmp_path / ".env").write_text("GITHUB_TOKEN=\n")
        assert discover_token(tmp_path, environ={"GITHUB_TOKEN": ""}) is None

    def test_env_file_without_token(self, tmp_path):
        (tmp_path / ".env").write_text("SOMETHING_ELSE=1\n")
        assert discover_token(tmp_path, environ={}) is None
