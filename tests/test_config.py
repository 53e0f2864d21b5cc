"""Tests for TOML config loading and CLI overrides."""

from pathlib import Path

from blockwarden.config import Config, load_config, merge_cli_options
from blockwarden.models import BlockingCategory

SAMPLE = """
[api]
base_url = "https://blocks.example.com"
service_key = "k-123"
timeout = 5

[cache]
timeout_seconds = 30

[state]
path = "/tmp/blockwarden-test/state.duckdb"

[enforcement]
hosts_path = "/tmp/hosts"
redirect_ip = "127.0.0.1"
time_saved_per_block = 60

[categories]
Weather = "News"
"cat-42" = "Shopping"
broken = "Not A Category"
"""


class TestLoadConfig:
    def test_defaults_when_missing(self, tmp_path: Path) -> None:
        config = load_config(tmp_path / "absent.toml")
        assert config == Config()
        assert config.cache_timeout == 120.0
        assert config.time_saved_per_block == 30.0

    def test_sections(self, tmp_path: Path) -> None:
        path = tmp_path / "blockwarden.toml"
        path.write_text(SAMPLE)

        config = load_config(path)

        assert config.api_base_url == "https://blocks.example.com"
        assert config.api_service_key == "k-123"
        assert config.api_timeout == 5.0
        assert config.cache_timeout == 30.0
        assert config.state_path == Path("/tmp/blockwarden-test/state.duckdb")
        assert config.hosts_path == Path("/tmp/hosts")
        assert config.redirect_ip == "127.0.0.1"
        assert config.time_saved_per_block == 60.0

    def test_category_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "blockwarden.toml"
        path.write_text(SAMPLE)

        mapping = load_config(path).category_mapping

        assert mapping == {"weather": BlockingCategory.NEWS, "cat-42": BlockingCategory.SHOPPING}

    def test_unreadable_file_falls_back(self, tmp_path: Path) -> None:
        path = tmp_path / "blockwarden.toml"
        path.write_text("[api\nbase_url = ")
        assert load_config(path) == Config()

    def test_api_config(self) -> None:
        api = Config(api_base_url="http://x", api_service_key="k").api_config()
        assert api.base_url == "http://x"
        assert api.service_key == "k"


class TestMergeCliOptions:
    def test_cli_overrides(self) -> None:
        config = merge_cli_options(Config(), api_url="http://cli", state="~/s.duckdb", hosts=None)
        assert config.api_base_url == "http://cli"
        assert config.state_path == Path("~/s.duckdb").expanduser()
        assert config.hosts_path == Path("/etc/hosts")

    def test_empty_values_ignored(self) -> None:
        config = merge_cli_options(Config(), api_url="", service_key=None)
        assert config.api_base_url == Config().api_base_url
