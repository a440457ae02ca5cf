from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..errors import ClassifiedError, ConfigError, ErrorKind
from ..store import API_KEY_ENV, API_KEY_NAMES, ConfigStore
from .config import KNOWN_PROVIDERS, VroomConfig, load_config_or_default
from .provider import ImageProvider
from .providers import huggingface, openai, placeholder, stability
from .providers.huggingface import HuggingFaceProvider
from .providers.openai import OpenAIProvider
from .providers.placeholder import PlaceholderProvider
from .providers.stability import StabilityProvider

PROVIDER_LABELS = {
    "huggingface": "Hugging Face (FLUX.1-schnell, free tier)",
    "openai": "OpenAI (DALL-E 3)",
    "stability": "Stability AI (Stable Image Core)",
    "placeholder": "Offline placeholder",
}

KEYED_PROVIDERS = frozenset({"openai", "stability"})

DEFAULT_DEADLINES = {
    "huggingface": huggingface.DEFAULT_DEADLINE,
    "openai": openai.DEFAULT_DEADLINE,
    "stability": stability.DEFAULT_DEADLINE,
    "placeholder": placeholder.DEFAULT_DEADLINE,
}


def missing_credential_error(name: str) -> ClassifiedError:
    key_name = API_KEY_NAMES[name]
    return ClassifiedError(
        ErrorKind.PERMANENT,
        f"{PROVIDER_LABELS[name]} requires an API key. "
        f"Set it with: vroom config set {key_name} YOUR_KEY "
        f"(or export {API_KEY_ENV[name]}).",
        message=f"Missing credential '{key_name}' for provider '{name}'",
        provider_id=name,
    )


class ProviderRegistry:
    def __init__(self, config: VroomConfig, store: ConfigStore):
        self._config = config
        self._store = store
        self._providers: dict[str, ImageProvider] = {}

    @classmethod
    def from_config_file(
        cls,
        config_path: Optional[Path] = None,
        store: Optional[ConfigStore] = None,
    ) -> "ProviderRegistry":
        return cls(load_config_or_default(config_path), store or ConfigStore())

    @property
    def config(self) -> VroomConfig:
        return self._config

    @property
    def store(self) -> ConfigStore:
        return self._store

    def available(self) -> list[str]:
        return list(KNOWN_PROVIDERS)

    def has_credentials(self, name: str) -> bool:
        if name not in KEYED_PROVIDERS:
            return True
        return bool(self._store.get_api_key(name))

    def deadline_for(self, name: str) -> float:
        return self._config.providers.settings_for(name).deadline_sec or DEFAULT_DEADLINES[name]

    def resolve_name(self, override: Optional[str] = None) -> str:
        """Pick the provider: explicit override, then last used, then configured default."""
        if override:
            return override
        last_used = self._store.get_last_used_service()
        if last_used in KNOWN_PROVIDERS:
            return last_used
        return self._config.default_provider

    def get_provider(self, name: str) -> ImageProvider:
        """Return a provider instance, cached per name.

        Raises:
            ConfigError: unknown provider name.
            ClassifiedError: (PERMANENT) required credential is missing.
        """
        if name in self._providers:
            return self._providers[name]

        provider = self._instantiate_provider(name)
        self._providers[name] = provider
        return provider

    def _instantiate_provider(self, name: str) -> ImageProvider:
        if name not in KNOWN_PROVIDERS:
            raise ConfigError(
                f"Unknown provider: '{name}'. Available providers: {sorted(KNOWN_PROVIDERS)}"
            )

        settings = self._config.providers.settings_for(name)
        if name == "placeholder":
            return PlaceholderProvider(settings)
        if name == "huggingface":
            return HuggingFaceProvider(self._store.get_api_key(name), settings)

        api_key = self._store.get_api_key(name)
        if not api_key:
            raise missing_credential_error(name)
        if name == "openai":
            return OpenAIProvider(api_key, settings)
        return StabilityProvider(api_key, settings)
