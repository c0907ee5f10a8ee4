"""
Environment configuration for the idea intake assistant.

Settings are read once at startup from the process environment (after
loading a .env file if present) and validated. Nothing else in the package
reads os.environ.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

AI_MODES = ("openai", "ollama", "huggingface", "static")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
TRUE_VALUES = {'true', 'yes', 'y', '1', 't'}
FALSE_VALUES = {'false', 'no', 'n', '0', 'f'}


class ConfigError(ValueError):
    """Raised when an environment variable has an invalid value"""
    pass


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _parse_positive_float(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """Validated runtime configuration"""
    ai_mode: str = "openai"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    ollama_base_url: str = "http://localhost:11434/v1"
    ollama_model: str = "gpt-oss:20b"
    hf_model_name: str = "mistralai/Mistral-7B-Instruct-v0.2"
    hf_load_in_4bit: bool = True
    llm_timeout: float = 30.0
    question_set_path: str = "data/question_set.json"
    csv_path: str = "data/ideas.csv"
    log_level: str = "INFO"

    @property
    def ai_enabled(self) -> bool:
        return self.ai_mode != "static"

    @property
    def model_name(self) -> str:
        if self.ai_mode == "ollama":
            return self.ollama_model
        if self.ai_mode == "huggingface":
            return self.hf_model_name
        return self.openai_model

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> "Settings":
        """
        Build settings from environment variables

        Args:
            environ: Mapping to read instead of os.environ (tests)
            dotenv: Load a .env file into os.environ first

        Returns:
            Settings: Validated configuration

        Raises:
            ConfigError: If any value is invalid
        """
        if environ is None:
            if dotenv:
                load_dotenv()
            environ = os.environ

        ai_mode = environ.get("INTAKE_AI_MODE", "openai").strip().lower()
        if ai_mode not in AI_MODES:
            raise ConfigError(f"INTAKE_AI_MODE must be one of {AI_MODES}, got {ai_mode!r}")

        api_key = environ.get("OPENAI_API_KEY") or None
        if ai_mode == "openai" and not api_key:
            raise ConfigError("OPENAI_API_KEY is required when INTAKE_AI_MODE=openai")

        log_level = environ.get("INTAKE_LOG_LEVEL", "INFO").strip().upper()
        if log_level not in LOG_LEVELS:
            raise ConfigError(f"INTAKE_LOG_LEVEL must be one of {LOG_LEVELS}, got {log_level!r}")

        settings = cls(
            ai_mode=ai_mode,
            openai_api_key=api_key,
            openai_model=environ.get("OPENAI_MODEL", cls.openai_model),
            ollama_base_url=environ.get("OLLAMA_BASE_URL", cls.ollama_base_url),
            ollama_model=environ.get("OLLAMA_MODEL", cls.ollama_model),
            hf_model_name=environ.get("HF_MODEL_NAME", cls.hf_model_name),
            hf_load_in_4bit=_parse_bool("HF_LOAD_IN_4BIT", environ.get("HF_LOAD_IN_4BIT", "true")),
            llm_timeout=_parse_positive_float("INTAKE_LLM_TIMEOUT", environ.get("INTAKE_LLM_TIMEOUT", "30")),
            question_set_path=environ.get("INTAKE_QUESTION_SET", cls.question_set_path),
            csv_path=environ.get("INTAKE_CSV_PATH", cls.csv_path),
            log_level=log_level,
        )

        logger.info(f"Settings loaded (ai_mode={settings.ai_mode}, model={settings.model_name})")
        return settings


def create_llm_client(settings: Settings):
    """
    Build the language model client for the configured mode

    Returns:
        ChatClient | HuggingFaceClient | None (static mode)
    """
    if settings.ai_mode == "static":
        logger.info("Static mode: language model disabled")
        return None

    if settings.ai_mode == "huggingface":
        # Deferred: importing torch/transformers is slow and only needed here
        from intake.utils.hf_client import HuggingFaceClient
        return HuggingFaceClient(
            model_name=settings.hf_model_name,
            load_in_4bit=settings.hf_load_in_4bit,
            timeout=settings.llm_timeout
        )

    from intake.utils.llm_client import ChatClient

    if settings.ai_mode == "ollama":
        return ChatClient.for_ollama(
            model=settings.ollama_model,
            base_url=settings.ollama_base_url,
            timeout=settings.llm_timeout
        )

    return ChatClient.for_openai(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        timeout=settings.llm_timeout
    )
