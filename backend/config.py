"""
Application configuration.

Responsibilities:
- Read environment variables
- Provide typed, immutable config objects
- Validate ranges once, at startup

Non-responsibilities:
- No orchestration logic
- No behavioral constants (see invariants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Literal, Mapping

from errors import ConfigError
from invariants import (
    IDLE_TALK_DEFAULT_MAX_CONTINUATION,
    IDLE_TALK_DEFAULT_MIN_SIMILARITY,
    IDLE_TALK_DEFAULT_TIMEOUT_MS,
    KNOWLEDGE_DB_DEFAULT_LIMIT,
    KNOWLEDGE_DB_DEFAULT_THRESHOLD,
    KNOWLEDGE_DB_DEFAULT_URL,
    LOG_LEVELS,
)


TopicMode = Literal["random", "sequential"]


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class IdleTalkConfig:
    """
    Idle talk settings.

    continue_context:
        Deepen the previous topic on the next timeout instead of always
        picking a new one.
    max_context_continuation:
        How many consecutive continuation turns one topic may receive.
    min_similarity:
        Threshold for the related-knowledge query of a continuation turn.
    """

    enabled: bool = False
    timeout_ms: int = IDLE_TALK_DEFAULT_TIMEOUT_MS
    mode: TopicMode = "random"
    min_similarity: float = IDLE_TALK_DEFAULT_MIN_SIMILARITY
    continue_context: bool = True
    max_context_continuation: int = IDLE_TALK_DEFAULT_MAX_CONTINUATION

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ConfigError("idle talk timeout_ms must be > 0")
        if self.mode not in ("random", "sequential"):
            raise ConfigError(f"idle talk mode must be 'random' or 'sequential', got {self.mode!r}")
        if not 0.0 <= self.min_similarity <= 1.0:
            raise ConfigError("idle talk min_similarity must be within [0, 1]")
        if self.max_context_continuation < 0:
            raise ConfigError("idle talk max_context_continuation must be >= 0")


@dataclass(frozen=True)
class KnowledgeDBConfig:
    """Knowledge database (retrieval store) connection settings."""

    enabled: bool = False
    url: str = KNOWLEDGE_DB_DEFAULT_URL
    limit: int = KNOWLEDGE_DB_DEFAULT_LIMIT
    threshold: float = KNOWLEDGE_DB_DEFAULT_THRESHOLD


@dataclass(frozen=True)
class LLMConfig:
    """Active chat model selection."""

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    base_url: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and passed down to the
    composition root (companion.build_companion).
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Persona
    # ------------------------------------------------------------------

    persona_prompt: str

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    llm: LLMConfig
    knowledge_db: KnowledgeDBConfig
    idle_talk: IdleTalkConfig

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env(environ: Mapping[str, str] | None = None) -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ConfigError if a value cannot be parsed or is out of range.
        """
        env = os.environ if environ is None else environ

        log_level = env.get("LOG_LEVEL", "INFO").upper()
        if log_level not in LOG_LEVELS:
            raise ConfigError(f"LOG_LEVEL must be one of {LOG_LEVELS}, got {log_level!r}")

        return AppConfig(
            env=env.get("ENV", "dev"),
            log_level=log_level,
            persona_prompt=env.get("PERSONA_PROMPT", ""),
            llm=LLMConfig(
                provider=env.get("LLM_PROVIDER", "openai"),
                model=env.get("LLM_MODEL", "gpt-4o-mini"),
                api_key=env.get("OPENAI_API_KEY"),
                base_url=env.get("OPENAI_BASE_URL"),
            ),
            knowledge_db=KnowledgeDBConfig(
                enabled=_env_bool(env, "KNOWLEDGE_DB_ENABLED", False),
                url=env.get("KNOWLEDGE_DB_URL", KNOWLEDGE_DB_DEFAULT_URL),
                limit=_env_int(env, "KNOWLEDGE_DB_LIMIT", KNOWLEDGE_DB_DEFAULT_LIMIT),
                threshold=_env_float(env, "KNOWLEDGE_DB_THRESHOLD", KNOWLEDGE_DB_DEFAULT_THRESHOLD),
            ),
            idle_talk=IdleTalkConfig(
                enabled=_env_bool(env, "IDLE_TALK_ENABLED", False),
                timeout_ms=_env_int(env, "IDLE_TALK_TIMEOUT_MS", IDLE_TALK_DEFAULT_TIMEOUT_MS),
                mode=env.get("IDLE_TALK_MODE", "random"),  # type: ignore[arg-type]
                min_similarity=_env_float(
                    env, "IDLE_TALK_MIN_SIMILARITY", IDLE_TALK_DEFAULT_MIN_SIMILARITY
                ),
                continue_context=_env_bool(env, "IDLE_TALK_CONTINUE_CONTEXT", True),
                max_context_continuation=_env_int(
                    env, "IDLE_TALK_MAX_CONTEXT_CONTINUATION", IDLE_TALK_DEFAULT_MAX_CONTINUATION
                ),
            ),
        )
