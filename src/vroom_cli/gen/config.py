from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..errors import ConfigError
from .resilience import RetryPolicy

CONFIG_FILENAME = "vroom.toml"

KNOWN_PROVIDERS = ("huggingface", "openai", "stability", "placeholder")


class ProviderSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")
    model: Optional[str] = None
    deadline_sec: Optional[float] = Field(default=None, gt=0)


class ProvidersConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    huggingface: Optional[ProviderSettings] = None
    openai: Optional[ProviderSettings] = None
    stability: Optional[ProviderSettings] = None
    placeholder: Optional[ProviderSettings] = None

    def settings_for(self, name: str) -> ProviderSettings:
        return getattr(self, name, None) or ProviderSettings()


class RetryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    max_retries: int = Field(default=2, ge=0)
    initial_delay_sec: float = Field(default=1.0, ge=0)
    max_delay_sec: float = Field(default=10.0, ge=0)

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay_sec,
            max_delay=self.max_delay_sec,
        )


class VroomConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    default_provider: str = "huggingface"
    output_dir: Optional[Path] = None
    retry: RetryConfig = RetryConfig()
    providers: ProvidersConfig = ProvidersConfig()

    @field_validator("default_provider")
    @classmethod
    def validate_default_provider(cls, v: str) -> str:
        if not v:
            raise ValueError("default_provider cannot be empty")
        return v

    @model_validator(mode="after")
    def check_default_provider_known(self) -> "VroomConfig":
        if self.default_provider not in KNOWN_PROVIDERS:
            raise ValueError(
                f"default_provider '{self.default_provider}' is not a known provider. "
                f"Available providers: {sorted(KNOWN_PROVIDERS)}"
            )
        return self


def load_config(config_path: Path) -> VroomConfig:
    if not config_path.exists():
        raise ConfigError(
            f"Config file not found: {config_path}\n"
            f"Create {CONFIG_FILENAME} or run without one to use defaults",
            path=config_path,
        )

    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore

    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except Exception as e:
        raise ConfigError(f"Failed to parse TOML: {e}", path=config_path) from e

    try:
        return VroomConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}", path=config_path) from e


def find_config(start_dir: Optional[Path] = None) -> Optional[Path]:
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()
    while current != current.parent:
        candidate = current / CONFIG_FILENAME
        if candidate.exists():
            return candidate
        current = current.parent

    return None


def load_config_or_default(config_path: Optional[Path] = None) -> VroomConfig:
    if config_path is None:
        config_path = find_config()
    if config_path is None:
        return VroomConfig()
    return load_config(config_path)
