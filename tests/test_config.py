import pytest

from chat_thyme.cli import build_parser, main, overrides_from_args
from chat_thyme.config import load_config, load_raw_config

_ENV_VARS = (
    "MODEL_SERVER_URL",
    "API_KEY",
    "USE_TOOLS",
    "EXA_API_KEY",
    "MODEL_SYSTEM_PROMPT",
    "DB_DIR",
    "DESIRED_MAX_DB_CONNECTION_CACHE_SIZE",
    "DB_CONNECTION_CACHE_TTL_MILLISECONDS",
    "DB_CONNECTION_CACHE_CHECK_INTERVAL_MILLISECONDS",
    "DISCORD_SLOW_MODE_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token")
    monkeypatch.setenv("CHAT_THYME_MODEL", "env-model")


def _write_toml(tmp_path, text):
    path = tmp_path / "config.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults(tmp_path):
    cfg = load_config(_write_toml(tmp_path, ""))

    assert cfg.core.MODEL == "env-model"
    assert cfg.core.SERVER_URL == "http://localhost:11434/v1"
    assert cfg.core.USE_TOOLS is False
    assert cfg.core.tools_available is False
    assert cfg.core.DISCORD_SLOW_MODE_INTERVAL == 10
    assert cfg.cache.DB_DIR == ".sqlite"
    assert cfg.cache.CACHE_SIZE == 100
    assert cfg.cache.ttl_seconds == 3600
    assert cfg.cache.check_interval_seconds == 600


def test_priority_cli_then_env_then_toml(tmp_path, monkeypatch):
    path = _write_toml(
        tmp_path,
        """
[chatthyme]
model = "toml-model"
server_url = "http://toml:1234/v1"
system_prompt = "toml prompt"

[chatthyme.database]
dir = "toml-dir"
connection_cache_size = 7
""",
    )
    monkeypatch.setenv("MODEL_SERVER_URL", "http://env:1/v1")
    monkeypatch.setenv("DESIRED_MAX_DB_CONNECTION_CACHE_SIZE", "9")

    cfg = load_config(path, {"model": "cli-model", "db_dir": "cli-dir"})

    assert cfg.core.MODEL == "cli-model"
    assert cfg.core.SERVER_URL == "http://env:1/v1"
    assert cfg.core.SYSTEM_PROMPT == "toml prompt"
    assert cfg.cache.DB_DIR == "cli-dir"
    assert cfg.cache.CACHE_SIZE == 9


def test_missing_required_settings_are_reported_together(tmp_path, monkeypatch):
    monkeypatch.delenv("DISCORD_BOT_TOKEN")
    monkeypatch.delenv("CHAT_THYME_MODEL")
    monkeypatch.setenv("DB_CONNECTION_CACHE_TTL_MILLISECONDS", "0")

    with pytest.raises(ValueError) as excinfo:
        load_config(_write_toml(tmp_path, ""))

    message = str(excinfo.value)
    assert "Missing environment variables: DISCORD_BOT_TOKEN, CHAT_THYME_MODEL" in message
    assert "DB_CONNECTION_CACHE_TTL_MILLISECONDS must be >= 1" in message


def test_negative_slow_mode_is_rejected(tmp_path, monkeypatch):
    monkeypatch.setenv("DISCORD_SLOW_MODE_SECONDS", "-1")
    with pytest.raises(ValueError, match="DISCORD_SLOW_MODE_SECONDS"):
        load_config(_write_toml(tmp_path, ""))


def test_tools_need_an_exa_key(tmp_path, monkeypatch):
    monkeypatch.setenv("USE_TOOLS", "true")
    cfg = load_config(_write_toml(tmp_path, ""))
    assert cfg.core.USE_TOOLS is True
    assert cfg.core.tools_available is False

    monkeypatch.setenv("EXA_API_KEY", "exa")
    assert load_config(_write_toml(tmp_path, "")).core.tools_available is True


def test_missing_default_file_is_empty_but_explicit_path_must_exist(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert load_raw_config() == {}
    with pytest.raises(FileNotFoundError):
        load_raw_config(tmp_path / "nope.toml")


def test_cli_overrides_only_include_given_options():
    args = build_parser().parse_args(["-m", "llama3", "--use-tools", "--db-connection-cache-size", "5", "-c", "x.toml"])
    assert overrides_from_args(args) == {"model": "llama3", "use_tools": True, "db_connection_cache_size": 5}

    assert overrides_from_args(build_parser().parse_args([])) == {}


def test_cli_exits_with_status_one_on_bad_config(tmp_path, monkeypatch):
    monkeypatch.delenv("CHAT_THYME_MODEL")
    assert main(["-c", str(_write_toml(tmp_path, ""))]) == 1
