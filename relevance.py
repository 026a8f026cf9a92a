#!/usr/bin/env python3
"""
Topic relevance filter.

When a focus topic is configured, each entry's content is sent to an
OpenAI-compatible chat model together with the topic. The reply decides the
entry's fate:

- ``NOT_RELEVANT...``  -> the entry is suppressed
- ``RELEVANT: <text>`` -> the entry is kept and ``<text>`` becomes its content
- anything else, or no reply at all -> the entry is kept unchanged (fail open)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import yaml
from jinja2 import Environment, StrictUndefined, Template, TemplateError, meta

from config import Config, get_logger
from errors import PromptTemplateError
from llm_client import chat_completion
from telemetry import trace_span

logger = get_logger("relevance")

PROMPT_KEY = "relevance"
REQUIRED_VARIABLES = frozenset({"topic", "content"})
RELEVANT_PREFIX = "RELEVANT:"
NOT_RELEVANT_PREFIX = "NOT_RELEVANT"

_env = Environment(undefined=StrictUndefined, autoescape=False, keep_trailing_newline=False)


class Verdict(str, Enum):
    KEEP = "keep"
    SUPPRESS = "suppress"


@dataclass(frozen=True)
class RelevanceResult:
    verdict: Verdict
    filtered: str = ""

    @property
    def suppressed(self) -> bool:
        return self.verdict is Verdict.SUPPRESS


KEEP_UNCHANGED = RelevanceResult(Verdict.KEEP)


def load_prompt_template(prompt_path: str) -> Template:
    """Load and validate the relevance prompt from a YAML file.

    Raises:
        PromptTemplateError: the file is unreadable, not a YAML mapping, lacks the
            ``relevance`` key, is not valid Jinja2, or does not use both
            ``topic`` and ``content``.
    """
    try:
        with open(prompt_path, 'r', encoding='utf-8') as f:
            prompts = yaml.safe_load(f)
    except FileNotFoundError:
        raise PromptTemplateError(f"Prompt configuration file not found at {prompt_path}") from None
    except PermissionError:
        raise PromptTemplateError(f"No permission to read prompt configuration file at {prompt_path}") from None
    except yaml.YAMLError as e:
        raise PromptTemplateError(f"Invalid YAML in prompt configuration file: {e}") from e
    except OSError as e:
        raise PromptTemplateError(f"OS error reading prompt configuration file: {e}") from e

    if not isinstance(prompts, dict):
        raise PromptTemplateError(f"Prompt configuration file {prompt_path} must be a YAML mapping")
    source = prompts.get(PROMPT_KEY)
    if not isinstance(source, str) or not source.strip():
        raise PromptTemplateError(f"No '{PROMPT_KEY}' prompt found in {prompt_path}")

    try:
        declared = meta.find_undeclared_variables(_env.parse(source))
        template = _env.from_string(source)
    except TemplateError as e:
        raise PromptTemplateError(f"Invalid '{PROMPT_KEY}' prompt template: {e}") from e

    missing = REQUIRED_VARIABLES - declared
    if missing:
        raise PromptTemplateError(
            f"'{PROMPT_KEY}' prompt template must reference {', '.join(sorted(missing))}"
        )
    return template


def build_prompt(template: Template, topic: str, content: str) -> str:
    return template.render(topic=topic, content=content).strip()


def classify_reply(reply: Optional[str]) -> RelevanceResult:
    """Map a model reply onto a verdict."""
    if not reply:
        return KEEP_UNCHANGED
    text = reply.strip()
    if text.startswith(NOT_RELEVANT_PREFIX):
        return RelevanceResult(Verdict.SUPPRESS)
    if text.startswith(RELEVANT_PREFIX):
        return RelevanceResult(Verdict.KEEP, text[len(RELEVANT_PREFIX):].strip())
    logger.debug(f"Unrecognized relevance reply, keeping entry: {text[:80]!r}")
    return KEEP_UNCHANGED


class RelevanceFilter:
    """Ask the chat model whether content matches the focus topic."""

    def __init__(self, config: Config, template: Template, client: Optional[Any] = None):
        self.config = config
        self.template = template
        self.topic = config.FOCUS_TOPIC or ""
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.topic)

    @trace_span("relevance.check", tracer_name="relevance")
    async def check(self, content: str) -> RelevanceResult:
        if not self.enabled or not content:
            return KEEP_UNCHANGED
        messages = [{"role": "user", "content": build_prompt(self.template, self.topic, content)}]
        try:
            reply = await chat_completion(
                messages,
                config=self.config,
                purpose="relevance",
                client_override=self._client,
            )
        except Exception as e:
            logger.warning(f"Relevance check failed, keeping entry: {e}")
            return KEEP_UNCHANGED
        return classify_reply(reply)
