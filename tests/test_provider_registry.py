from __future__ import annotations

from pathlib import Path

import pytest

from vroom_cli.errors import ClassifiedError, ConfigError, ErrorKind
from vroom_cli.gen.config import VroomConfig, find_config, load_config, load_config_or_default
from vroom_cli.gen.providers.huggingface import HuggingFaceProvider
from vroom_cli.gen.providers.openai import OpenAIProvider
from vroom_cli.gen.providers.placeholder import PlaceholderProvider
from vroom_cli.gen.registry import ProviderRegistry
from vroom_cli.store import ConfigStore

PLACEHOLDER_CONFIG = """
default_provider = "placeholder"

[providers.placeholder]
"""


@pytest.fixture
def store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigStore:
    for env in ("HF_TOKEN", "OPENAI_API_KEY", "STABILITY_API_KEY"):
        monkeypatch.delenv(env, raising=False)
    return ConfigStore(tmp_path / "store" / "config.json")


class TestLoadConfig:
    def test_load_valid_config(self, tmp_path: Path) -> None:
        config_file = tmp_path / "vroom.toml"
        config_file.write_text(PLACEHOLDER_CONFIG)
        config = load_config(config_file)
        assert config.default_provider == "placeholder"
        assert config.providers.placeholder is not None

    def test_retry_and_deadline_settings(self, tmp_path: Path) -> None:
        config_file = tmp_path / "vroom.toml"
        config_file.write_text("""
[retry]
max_retries = 4
initial_delay_sec = 0.5

[providers.openai]
deadline_sec = 30
""")
        config = load_config(config_file)
        policy = config.retry.to_policy()
        assert policy.max_retries == 4
        assert policy.initial_delay == 0.5
        assert policy.max_delay == 10.0
        assert config.providers.settings_for("openai").deadline_sec == 30

    def test_missing_config_produces_helpful_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "vroom.toml"
        with pytest.raises(ConfigError) as exc_info:
            load_config(config_file)

        error_msg = str(exc_info.value)
        assert "not found" in error_msg.lower()
        assert "vroom.toml" in error_msg

    def test_invalid_toml_produces_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "vroom.toml"
        config_file.write_text("this is not valid [toml")

        with pytest.raises(ConfigError) as exc_info:
            load_config(config_file)
        assert "toml" in str(exc_info.value).lower()

    def test_invalid_default_provider_produces_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "vroom.toml"
        config_file.write_text('default_provider = "nonexistent"\n')

        with pytest.raises(ConfigError) as exc_info:
            load_config(config_file)

        error_msg = str(exc_info.value)
        assert "nonexistent" in error_msg
        assert "placeholder" in error_msg

    def test_unknown_keys_rejected(self, tmp_path: Path) -> None:
        config_file = tmp_path / "vroom.toml"
        config_file.write_text("[retry]\nattempts = 3\n")
        with pytest.raises(ConfigError):
            load_config(config_file)

    def test_non_positive_deadline_rejected(self, tmp_path: Path) -> None:
        config_file = tmp_path / "vroom.toml"
        config_file.write_text("[providers.stability]\ndeadline_sec = 0\n")
        with pytest.raises(ConfigError):
            load_config(config_file)

    def test_find_config_walks_up(self, tmp_path: Path) -> None:
        (tmp_path / "vroom.toml").write_text(PLACEHOLDER_CONFIG)
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config(nested) == (tmp_path / "vroom.toml").resolve()

    def test_defaults_without_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr("vroom_cli.gen.config.find_config", lambda start_dir=None: None)
        assert load_config_or_default() == VroomConfig()


class TestProviderRegistry:
    def test_get_placeholder_provider(self, tmp_path: Path, store: ConfigStore) -> None:
        config_file = tmp_path / "vroom.toml"
        config_file.write_text(PLACEHOLDER_CONFIG)
        registry = ProviderRegistry.from_config_file(config_file, store)
        provider = registry.get_provider("placeholder")

        assert isinstance(provider, PlaceholderProvider)
        assert provider.provider_id == "placeholder"

    def test_configured_default_is_resolved(self, tmp_path: Path, store: ConfigStore) -> None:
        config_file = tmp_path / "vroom.toml"
        config_file.write_text(PLACEHOLDER_CONFIG)
        registry = ProviderRegistry.from_config_file(config_file, store)
        assert registry.get_provider(registry.resolve_name()).provider_id == "placeholder"

    def test_provider_caching(self, store: ConfigStore) -> None:
        registry = ProviderRegistry(VroomConfig(), store)
        assert registry.get_provider("placeholder") is registry.get_provider("placeholder")

    def test_unknown_provider_error(self, store: ConfigStore) -> None:
        registry = ProviderRegistry(VroomConfig(), store)

        with pytest.raises(ConfigError) as exc_info:
            registry.get_provider("nonexistent")

        error_msg = str(exc_info.value)
        assert "nonexistent" in error_msg
        assert "placeholder" in error_msg

    def test_huggingface_works_without_token(self, store: ConfigStore) -> None:
        registry = ProviderRegistry(VroomConfig(), store)
        provider = registry.get_provider("huggingface")
        assert isinstance(provider, HuggingFaceProvider)
        assert provider.deadline == 120

    def test_missing_key_is_permanent(self, store: ConfigStore) -> None:
        registry = ProviderRegistry(VroomConfig(), store)

        with pytest.raises(ClassifiedError) as exc_info:
            registry.get_provider("openai")

        assert exc_info.value.kind is ErrorKind.PERMANENT
        assert "vroom config set openaiApiKey" in exc_info.value.user_message
        assert not registry.has_credentials("openai")

    def test_key_from_store(self, store: ConfigStore) -> None:
        store.set("openaiApiKey", "sk-stored")
        registry = ProviderRegistry(VroomConfig(), store)
        assert isinstance(registry.get_provider("openai"), OpenAIProvider)
        assert registry.has_credentials("openai")

    def test_key_from_environment(self, store: ConfigStore, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STABILITY_API_KEY", "sk-env")
        registry = ProviderRegistry(VroomConfig(), store)
        assert registry.get_provider("stability").provider_id == "stability"

    def test_configured_deadline(self, store: ConfigStore) -> None:
        config = VroomConfig.model_validate({"providers": {"huggingface": {"deadline_sec": 200}}})
        registry = ProviderRegistry(config, store)
        assert registry.deadline_for("huggingface") == 200
        assert registry.deadline_for("openai") == 60
        assert registry.get_provider("huggingface").deadline == 200

    def test_resolve_name_order(self, store: ConfigStore) -> None:
        registry = ProviderRegistry(VroomConfig(default_provider="placeholder"), store)
        assert registry.resolve_name() == "placeholder"

        store.set_last_used_service("stability")
        assert registry.resolve_name() == "stability"
        assert registry.resolve_name("openai") == "openai"

    def test_unknown_last_used_ignored(self, store: ConfigStore) -> None:
        store.set_last_used_service("midjourney")
        registry = ProviderRegistry(VroomConfig(), store)
        assert registry.resolve_name() == "huggingface"
