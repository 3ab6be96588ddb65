from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from notechat.llm.token_budget import compute_budget
from notechat.types import ProviderName, TokenBudget

MAX_SUGGESTION_TEMPLATES = 10
DEFAULT_ROLE_NAME = "default"
DEFAULT_SYSTEM_PROMPT = (
    "You are a gentle and reliable assistant focused on improving and summarizing writing. "
    "Answer using the provided notes when they are relevant."
)


class ProviderConfig(BaseModel):
    api_key_env: str
    auth_token_env: str | None = None


class ModelConfig(BaseModel):
    provider: ProviderName = "anthropic"
    name: str = "claude-sonnet-4-5"
    max_output_tokens: int = 4000
    temperature: float = 0.7
    base_url: str | None = None
    providers: dict[ProviderName, ProviderConfig] = Field(
        default_factory=lambda: {
            "anthropic": ProviderConfig(
                api_key_env="ANTHROPIC_API_KEY",
                auth_token_env="ANTHROPIC_AUTH_TOKEN",
            ),
            "gemini": ProviderConfig(api_key_env="GEMINI_API_KEY"),
        }
    )


class BudgetConfig(BaseModel):
    max_total_tokens: int = Field(default=16000, gt=0)
    article_ratio: float = Field(default=0.65, gt=0.0, le=1.0)
    context_ratio: float = Field(default=0.25, gt=0.0, le=1.0)
    max_chunk_size: int = Field(default=2000, gt=0)

    @model_validator(mode="after")
    def _ratios_fit(self) -> BudgetConfig:
        if self.article_ratio + self.context_ratio > 1.0:
            raise ValueError("article_ratio + context_ratio must not exceed 1.0")
        return self

    def to_budget(self) -> TokenBudget:
        return compute_budget(self.max_total_tokens, self.article_ratio, self.context_ratio)


class ChatConfig(BaseModel):
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    default_role: str = DEFAULT_ROLE_NAME
    roles: dict[str, str] = Field(
        default_factory=lambda: {DEFAULT_ROLE_NAME: DEFAULT_SYSTEM_PROMPT}
    )
    suggestion_templates: list[str] = Field(default_factory=list)
    history_file: str = "./chat-history.json"

    @field_validator("suggestion_templates")
    @classmethod
    def _clip_templates(cls, value: list[str]) -> list[str]:
        cleaned = [line.strip() for line in value if line.strip()]
        return cleaned[:MAX_SUGGESTION_TEMPLATES]

    def resolve_system_prompt(self, role_name: str | None = None) -> str:
        name = role_name or self.default_role
        return self.roles.get(name) or self.system_prompt


class LoggingConfig(BaseModel):
    events_dir: str = "./sessions"
    sanitize_control_chars: bool = True
    redact_secrets: bool = True
    transcript_enabled: bool = True
    transcript_filename: str = "chat_transcript.log"


class NotechatConfig(BaseModel):
    model: ModelConfig = Field(default_factory=ModelConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigError(RuntimeError):
    pass


def _parse_dotenv_line(line: str) -> tuple[str, str] | None:
    text = line.strip()
    if not text or text.startswith("#"):
        return None
    if text.startswith("export "):
        text = text[len("export ") :].strip()
    if "=" not in text:
        return None

    key, raw_value = text.split("=", 1)
    key = key.strip()
    if not key:
        return None

    value = raw_value.strip()
    if value and value[0] in {"'", '"'} and value[-1:] == value[0]:
        value = value[1:-1]
    elif " #" in value:
        value = value.split(" #", 1)[0].rstrip()

    return key, value.strip()


def _read_dotenv(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}

    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        parsed = _parse_dotenv_line(line)
        if parsed is None:
            continue
        key, value = parsed
        values[key] = value
    return values


def discover_config_path(config_override: Path | None = None) -> Path | None:
    if config_override is not None:
        return config_override.resolve()

    candidates = [
        Path("./notechat.yaml"),
        Path("~/.config/notechat/notechat.yaml").expanduser(),
    ]

    for candidate in candidates:
        if candidate.exists():
            return candidate.resolve()
    return None


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file is not valid YAML: {path}: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")
    return raw


def load_config(config_override: Path | None = None) -> NotechatConfig:
    path = discover_config_path(config_override)
    if path is None:
        return NotechatConfig()
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    data = _load_yaml(path)
    try:
        return NotechatConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def write_default_config(path: Path, overwrite: bool = False) -> None:
    if path.exists() and not overwrite:
        raise ConfigError(f"Config file already exists: {path}")

    config = NotechatConfig()
    serialized = yaml.safe_dump(
        config.model_dump(mode="python"), sort_keys=False, allow_unicode=True
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialized, encoding="utf-8")


def _get_env_or_dotenv(env_name: str | None) -> str | None:
    if not env_name:
        return None
    value = os.getenv(env_name)
    if value is None:
        dotenv_values = _read_dotenv(Path(".env"))
        value = dotenv_values.get(env_name)
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def get_provider_api_key(config: NotechatConfig, provider: ProviderName) -> str | None:
    provider_config = config.model.providers.get(provider)
    if provider_config is None:
        return None
    return _get_env_or_dotenv(provider_config.api_key_env)


def get_provider_auth_token(config: NotechatConfig, provider: ProviderName) -> str | None:
    provider_config = config.model.providers.get(provider)
    if provider_config is None:
        return None
    return _get_env_or_dotenv(provider_config.auth_token_env)


def provider_has_credentials(config: NotechatConfig, provider: ProviderName) -> bool:
    return bool(
        get_provider_api_key(config, provider) or get_provider_auth_token(config, provider)
    )


def validate_api_config(config: NotechatConfig, provider: ProviderName | None = None) -> list[str]:
    """List the problems that would make a completion request pointless."""
    selected = provider or config.model.provider
    errors: list[str] = []
    if not provider_has_credentials(config, selected):
        provider_config = config.model.providers.get(selected)
        env_name = provider_config.api_key_env if provider_config else "<unset>"
        errors.append(f"Please configure a valid API key for {selected} (env {env_name})")
    if not config.model.name.strip():
        errors.append("Please choose a model name")
    return errors
