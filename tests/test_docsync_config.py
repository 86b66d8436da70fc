import pytest

from hidesync.docsync import DocSyncConfig, InvalidConfig


def test_defaults_are_applied():
    config = DocSyncConfig.from_options({"base_url": "https://api.hidesync.local/", "unknown": True})

    assert config.base_url == "https://api.hidesync.local"
    assert config.api_prefix == "/api/v1"
    assert config.resource_path == "/documentation"
    assert config.store_path == ":memory:"
    assert config.temp_id_prefix == "temp-"
    assert config.page_size == 20
    assert config.probe_enabled


def test_values_are_coerced():
    config = DocSyncConfig.from_options(
        {"base_url": "http://localhost:8000", "timeout": "12.5", "page_size": "50", "probe_interval": 0}
    )

    assert config.timeout == 12.5
    assert config.page_size == 50
    assert not config.probe_enabled


@pytest.mark.parametrize(
    "options",
    [
        {},
        {"base_url": "ftp://files.local"},
        {"base_url": "http://x", "timeout": 0},
        {"base_url": "http://x", "page_size": 0},
        {"base_url": "http://x", "probe_interval": 2},
        {"base_url": "http://x", "search_retries": -1},
        {"base_url": "http://x", "temp_id_prefix": "  "},
    ],
)
def test_invalid_options_raise(options):
    with pytest.raises(InvalidConfig):
        DocSyncConfig.from_options(options)


def test_from_env_with_overrides(tmp_path):
    environ = {
        "HIDESYNC_API_URL": "https://docs.example",
        "HIDESYNC_STORE_PATH": str(tmp_path / "docs.db"),
        "HIDESYNC_API_TIMEOUT": "9",
        "HIDESYNC_PROBE_INTERVAL": "60",
    }

    config = DocSyncConfig.from_env(environ, page_size=5)

    assert config.base_url == "https://docs.example"
    assert config.store_path == str(tmp_path / "docs.db")
    assert config.timeout == 9
    assert config.probe_interval == 60
    assert config.page_size == 5


def test_from_env_defaults_to_localhost():
    assert DocSyncConfig.from_env({}).base_url == "http://localhost:8000"


def test_as_options_round_trips():
    config = DocSyncConfig.from_options({"base_url": "https://a.example", "search_retries": 4})

    assert DocSyncConfig.from_options(config.as_options()) == config
