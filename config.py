#!/usr/bin/env python3
"""
Configuration management for the RSS stream processor.

This module centralizes configuration loading and validation. Values come
from environment variables, an optional ``.env`` file and an optional YAML
secrets file; command-line flags are applied on top by ``main``. A ``Config``
instance is passed explicitly to every component instead of being read from
module-level state.
"""

from os import environ, path, access, R_OK, getcwd
from typing import Dict, Any, Mapping, MutableMapping, Optional
from logging import getLogger, basicConfig, StreamHandler, INFO, DEBUG, WARNING, ERROR
import sys
import yaml
from dotenv import load_dotenv

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; rssp/0.0.0)"
DEFAULT_MAX_LENGTH = 2000


def setup_logging(env: Optional[Mapping[str, str]] = None):
    """Configure the single application-wide logger.

    Environment Variables:
        LOG_LEVEL: DEBUG, INFO, WARNING or ERROR - defaults to INFO
        LOG_TIMESTAMPS: Enable/disable timestamps in logs (true/false) - defaults to true

    Logs go to stderr so they never interleave with the item stream, which
    defaults to stdout. Modules use get_logger() to obtain child loggers.
    """
    env = environ if env is None else env

    level_str = env.get("LOG_LEVEL", "INFO").upper()
    level_map = {
        "DEBUG": DEBUG,
        "INFO": INFO,
        "WARNING": WARNING,
        "ERROR": ERROR
    }
    level = level_map.get(level_str, INFO)

    show_timestamps = env.get("LOG_TIMESTAMPS", "true").lower() != "false"

    if show_timestamps:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    else:
        log_format = '%(name)s - %(levelname)s - %(message)s'

    basicConfig(
        level=level,
        format=log_format,
        handlers=[StreamHandler(sys.stderr)],
        force=True
    )

    # aiohttp and openai are chatty at DEBUG; keep them at WARNING unless asked
    for name in ("aiohttp", "openai", "httpx", "httpcore"):
        getLogger(name).setLevel(max(level, WARNING))

    return getLogger("rssp")


def get_logger(name: str):
    """Get a module-specific logger with the unified configuration.

    Args:
        name: The logger name (e.g., "poller", "extractor", "relevance")

    Returns:
        A logger named "rssp.{name}"
    """
    return getLogger(f"rssp.{name}")


logger = get_logger("config")


class Config:
    """Runtime configuration for the stream processor.

    Loading order:
    1. ``.env`` in the working directory (does not override the process environment)
    2. YAML secrets file named by SECRETS_FILE (overrides both)
    3. Explicit keyword overrides, normally the parsed command-line flags

    Passing ``env`` skips the first two steps and reads only from that mapping,
    which keeps tests isolated from the host environment.

    Example secrets.yaml format:
    ```yaml
    DIFFBOT_TOKEN: "your-diffbot-token"
    OPENAI_API_KEY: "your-api-key"
    ```
    """

    def __init__(self, env: Optional[MutableMapping[str, str]] = None, **overrides: Any):
        if env is None:
            self._env = environ
            self._load_environment()
        else:
            self._env = env
        self._validate_and_set_config()
        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown configuration key: {key}")
            setattr(self, key, value)

    def _load_environment(self) -> None:
        """Load variables from a .env file and a secrets file if present."""
        dotenv_path = path.join(getcwd(), '.env')
        if path.exists(dotenv_path):
            load_dotenv(dotenv_path)
            logger.debug(f"Loaded environment variables from {dotenv_path}")

        self._load_secrets_file()

    def _validate_positive_int(self, env_var: str, default: int, min_val: int = 1) -> int:
        """Validate and parse a positive integer environment variable."""
        try:
            value = int(self._env.get(env_var, str(default)))
            if value < min_val:
                logger.warning(f"{env_var} must be at least {min_val}, using default {default}")
                return default
            return value
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def _validate_positive_float(self, env_var: str, default: float, min_val: float = 0.1) -> float:
        """Validate and parse a positive float environment variable."""
        try:
            value = float(self._env.get(env_var, str(default)))
            if value < min_val:
                logger.warning(f"{env_var} must be at least {min_val}, using default {default}")
                return default
            return value
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def _optional_secret(self, env_var: str) -> Optional[str]:
        value = (self._env.get(env_var) or "").strip()
        return value or None

    def _validate_and_set_config(self) -> None:
        """Validate and set all configuration values."""
        self.USER_AGENT = self._env.get("USER_AGENT", DEFAULT_USER_AGENT)

        # Polling
        self.POLL_INTERVAL_SECONDS = self._validate_positive_float("POLL_INTERVAL_SECONDS", 30.0, 0.01)
        self.HTTP_TIMEOUT = self._validate_positive_int("HTTP_TIMEOUT", 30, 1)

        # Content extraction
        self.DIFFBOT_TOKEN = self._optional_secret("DIFFBOT_TOKEN")
        self.DIFFBOT_ENDPOINT = self._env.get("DIFFBOT_ENDPOINT", "https://api.diffbot.com/v3/article")
        self.MAX_LENGTH = self._validate_positive_int("MAX_LENGTH", DEFAULT_MAX_LENGTH, 1)

        # Reasoning service (OpenAI-compatible chat completions)
        self.OPENAI_API_KEY = self._optional_secret("OPENAI_API_KEY")
        self.OPENAI_BASE_URL = self._optional_secret("OPENAI_BASE_URL")
        self.OPENAI_MODEL = self._env.get("OPENAI_MODEL", "gpt-4o-mini")
        self.LLM_TIMEOUT = self._validate_positive_int("LLM_TIMEOUT", 60, 5)
        self.LLM_MAX_RETRIES = self._validate_positive_int("LLM_MAX_RETRIES", 1, 0)
        self.LLM_RETRY_DELAY_BASE = self._validate_positive_float("LLM_RETRY_DELAY_BASE", 1.0, 0.0)

        # Output, normally set from the command line
        self.OUTPUT_PATH: Optional[str] = None
        self.FULL_OUTPUT = False
        self.INCLUDE_CHANNEL = False
        self.FOCUS_TOPIC: Optional[str] = None

        base_dir = path.dirname(path.abspath(__file__))
        self.PROMPT_CONFIG_PATH = self._env.get("PROMPT_CONFIG_PATH", path.join(base_dir, "prompt.yaml"))

    def _load_secrets_file(self) -> None:
        """Load environment variable overrides from a YAML secrets file.

        If SECRETS_FILE is set, the file must hold a top-level mapping of
        variable names to values (a nested ``environment`` mapping is also
        accepted). Values are copied into the process environment.
        """
        secrets_file_path = self._env.get("SECRETS_FILE")
        if not secrets_file_path:
            return

        secrets_config = self._safe_read_yaml(secrets_file_path, 2 * 1024 * 1024, 'secrets')
        if not secrets_config:
            return

        if not isinstance(secrets_config, dict):
            logger.warning(f"Secrets file {secrets_file_path} must be a YAML mapping at the top level")
            return
        env_vars = secrets_config.get('environment') if isinstance(secrets_config.get('environment'), dict) else secrets_config

        secrets_loaded = 0
        for key, value in env_vars.items():
            if isinstance(key, str) and value is not None:
                self._env[key] = str(value)
                secrets_loaded += 1
            else:
                logger.warning(f"Skipping invalid environment variable in secrets file: {key}")

        logger.info(f"Loaded {secrets_loaded} environment variables from secrets file {secrets_file_path}")

    def _safe_read_yaml(self, file_path: str, max_size: int, kind: str) -> Any | None:
        """Safely read a YAML file with consistent validation.

        Returns:
            Parsed YAML (mapping/list/primitive) or None on failure.
        """
        try:
            if not path.isfile(file_path):
                logger.warning(f"{kind.capitalize()} file not found at {file_path}")
                return None
            if not access(file_path, R_OK):
                logger.error(f"No read permission for {kind} file at {file_path}")
                return None
            size = path.getsize(file_path)
            if size > max_size:
                logger.error(f"{kind.capitalize()} file too large: {size} bytes (limit: {max_size} bytes)")
                return None
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
            if not data:
                logger.warning(f"Empty or invalid YAML in {kind} file {file_path}")
                return None
            return data
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML in {kind} file {file_path}: {e}")
        except OSError as e:
            logger.error(f"Error loading {kind} file {file_path}: {e}")
        return None

    def get_config_summary(self) -> Dict[str, Any]:
        """Get a summary of current configuration for logging/debugging."""
        return {
            "poll_interval_seconds": self.POLL_INTERVAL_SECONDS,
            "http_timeout": self.HTTP_TIMEOUT,
            "max_length": self.MAX_LENGTH,
            "output": self.OUTPUT_PATH or "<stdout>",
            "full_output": self.FULL_OUTPUT,
            "include_channel": self.INCLUDE_CHANNEL,
            "focus_topic": self.FOCUS_TOPIC or "",
            "has_diffbot_token": bool(self.DIFFBOT_TOKEN),
            "has_openai_key": bool(self.OPENAI_API_KEY),
            "openai_model": self.OPENAI_MODEL,
        }
