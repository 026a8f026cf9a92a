import logging
import sys

import pytest

from config import Config, DEFAULT_USER_AGENT, get_logger, setup_logging


def test_defaults():
    config = Config({})
    assert config.POLL_INTERVAL_SECONDS == 30.0
    assert config.HTTP_TIMEOUT == 30
    assert config.MAX_LENGTH == 2000
    assert config.OPENAI_MODEL == "gpt-4o-mini"
    assert config.LLM_MAX_RETRIES == 1
    assert config.USER_AGENT == DEFAULT_USER_AGENT
    assert config.DIFFBOT_TOKEN is None
    assert config.OPENAI_API_KEY is None
    assert config.OUTPUT_PATH is None
    assert not config.FULL_OUTPUT
    assert not config.INCLUDE_CHANNEL
    assert config.FOCUS_TOPIC is None
    assert config.PROMPT_CONFIG_PATH.endswith("prompt.yaml")


def test_environment_values_are_read():
    config = Config({
        "POLL_INTERVAL_SECONDS": "5",
        "DIFFBOT_TOKEN": " token ",
        "OPENAI_API_KEY": "sk-test",
        "OPENAI_BASE_URL": "http://localhost:11434/v1",
        "OPENAI_MODEL": "llama3",
    })
    assert config.POLL_INTERVAL_SECONDS == 5.0
    assert config.DIFFBOT_TOKEN == "token"
    assert config.OPENAI_API_KEY == "sk-test"
    assert config.OPENAI_BASE_URL == "http://localhost:11434/v1"
    assert config.OPENAI_MODEL == "llama3"


def test_blank_credentials_disable_stages():
    config = Config({"DIFFBOT_TOKEN": "   ", "OPENAI_API_KEY": ""})
    assert config.DIFFBOT_TOKEN is None
    assert config.OPENAI_API_KEY is None


@pytest.mark.parametrize("value", ["abc", "-1", "0"])
def test_invalid_numbers_fall_back_to_defaults(value):
    config = Config({"HTTP_TIMEOUT": value, "POLL_INTERVAL_SECONDS": value})
    assert config.HTTP_TIMEOUT == 30
    assert config.POLL_INTERVAL_SECONDS == 30.0


def test_overrides_apply_and_unknown_keys_fail():
    config = Config({}, FULL_OUTPUT=True, MAX_LENGTH=100)
    assert config.FULL_OUTPUT
    assert config.MAX_LENGTH == 100
    with pytest.raises(AttributeError):
        Config({}, NOT_A_SETTING=1)


def test_secrets_file_overrides_environment(tmp_path, monkeypatch):
    secrets = tmp_path / "secrets.yaml"
    secrets.write_text("DIFFBOT_TOKEN: from-secrets\nOPENAI_API_KEY: sk-secret\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRETS_FILE", str(secrets))
    monkeypatch.setenv("DIFFBOT_TOKEN", "from-env")
    monkeypatch.setenv("OPENAI_API_KEY", "from-env")

    config = Config()

    assert config.DIFFBOT_TOKEN == "from-secrets"
    assert config.OPENAI_API_KEY == "sk-secret"


def test_secrets_file_must_be_a_mapping(tmp_path, monkeypatch):
    secrets = tmp_path / "secrets.yaml"
    secrets.write_text("- not\n- a mapping\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRETS_FILE", str(secrets))
    monkeypatch.delenv("DIFFBOT_TOKEN", raising=False)

    config = Config()

    assert config.DIFFBOT_TOKEN is None


def test_logging_goes_to_stderr_at_configured_level():
    root = setup_logging({"LOG_LEVEL": "debug", "LOG_TIMESTAMPS": "false"})
    try:
        assert root.name == "rssp"
        assert logging.getLogger().level == logging.DEBUG
        handler = logging.getLogger().handlers[0]
        assert handler.stream is sys.stderr
        assert get_logger("poller").name == "rssp.poller"
        assert logging.getLogger("aiohttp").level == logging.WARNING
    finally:
        setup_logging({"LOG_LEVEL": "WARNING"})
