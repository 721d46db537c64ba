"""Tests for configuration loading and validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from toolstream.config.loader import _deep_merge, load_config
from toolstream.config.schema import (
    DEFAULT_SYSTEM_POLICY,
    ChatConfig,
    ProviderConfig,
    RegistryConfig,
    ToolstreamConfig,
)
from toolstream.core.errors import ConfigError


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """No user/project config files and no relevant env vars."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    for var in (
        "TOOLSTREAM_CONFIG",
        "XDG_CONFIG_HOME",
        "MCP_PROD_URL",
        "MCP_TEST_URL",
        "MCP_API_KEY",
        "OPENAI_API_KEY",
    ):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


# ─── Schema Defaults ──────────────────────────────────────────


class TestSchemaDefaults:
    def test_all_defaults(self):
        cfg = ToolstreamConfig()
        assert set(cfg.registries) == {"prod", "test"}
        assert cfg.registries["prod"].url_env == "MCP_PROD_URL"
        assert cfg.registries["test"].url_env == "MCP_TEST_URL"
        assert cfg.provider.default_model == "gpt-4o"
        assert cfg.chat.max_steps == 1
        assert cfg.api.port == 8080

    def test_registry_defaults(self):
        cfg = RegistryConfig()
        assert cfg.url is None
        assert cfg.api_key_env == "MCP_API_KEY"
        assert cfg.api_key_header == "x-api-key"

    def test_provider_defaults(self):
        cfg = ProviderConfig()
        assert cfg.api_key_env == "OPENAI_API_KEY"
        assert cfg.base_url is None

    def test_system_prompt_joins_policy(self):
        cfg = ChatConfig()
        assert cfg.system_prompt == "\n".join(DEFAULT_SYSTEM_POLICY)
        assert "up to 10 examples" in cfg.system_prompt

    def test_one_stage_configured_keeps_other(self):
        cfg = ToolstreamConfig.model_validate(
            {"registries": {"prod": {"url": "http://p.invalid"}}}
        )
        assert cfg.registries["prod"].url == "http://p.invalid"
        assert cfg.registries["test"].url_env == "MCP_TEST_URL"

    def test_max_steps_must_be_positive(self):
        with pytest.raises(ValidationError):
            ChatConfig(max_steps=0)

    def test_extra_fields_ignored_by_default(self):
        cfg = ToolstreamConfig.model_validate({"unknown_section": {"foo": "bar"}})
        assert cfg.chat.max_steps == 1


# ─── Deep Merge ───────────────────────────────────────────────


class TestDeepMerge:
    def test_nested_merge(self):
        base = {"chat": {"max_steps": 1, "send_sources": True}}
        result = _deep_merge(base, {"chat": {"max_steps": 3}})
        assert result == {"chat": {"max_steps": 3, "send_sources": True}}

    def test_base_unchanged(self):
        base = {"a": 1}
        _deep_merge(base, {"a": 2})
        assert base["a"] == 1


# ─── TOML Loading ─────────────────────────────────────────────


class TestLoadConfig:
    def test_defaults_when_no_files(self, isolated):
        cfg = load_config()
        assert cfg.registries["prod"].url is None
        assert cfg.provider.api_key is None

    def test_load_from_explicit_path(self, isolated):
        toml_file = isolated / "cfg.toml"
        toml_file.write_text(
            "[registries.prod]\n"
            'url = "https://tools.example.test/mcp"\n'
            "\n[chat]\nmax_steps = 3\nsend_reasoning = false\n"
        )
        cfg = load_config(path=toml_file)
        assert cfg.registries["prod"].url == "https://tools.example.test/mcp"
        assert cfg.chat.max_steps == 3
        assert cfg.chat.send_reasoning is False
        assert cfg.chat.send_sources is True

    def test_project_file_discovered(self, isolated):
        (isolated / "toolstream.toml").write_text('[provider]\ndefault_model = "gpt-4o-mini"\n')
        cfg = load_config()
        assert cfg.provider.default_model == "gpt-4o-mini"

    def test_explicit_path_not_found_raises(self, isolated):
        with pytest.raises(ConfigError, match="not found"):
            load_config(path=isolated / "nonexistent.toml")

    def test_invalid_toml_raises(self, isolated):
        bad = isolated / "bad.toml"
        bad.write_text("[invalid\n")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(path=bad)

    def test_validation_failure_raises_config_error(self, isolated):
        with pytest.raises(ConfigError, match="validation failed"):
            load_config(overrides={"chat": {"max_steps": 0}})

    def test_user_file_below_project_file(self, isolated, monkeypatch):
        user_dir = isolated / "xdg" / "toolstream"
        user_dir.mkdir(parents=True)
        (user_dir / "config.toml").write_text("[chat]\nmax_steps = 4\nsend_sources = false\n")
        (isolated / "toolstream.toml").write_text("[chat]\nmax_steps = 2\n")
        monkeypatch.setenv("XDG_CONFIG_HOME", str(isolated / "xdg"))
        cfg = load_config()
        assert cfg.chat.max_steps == 2
        assert cfg.chat.send_sources is False

    def test_repeated_file_keeps_highest_layer(self, isolated, monkeypatch):
        project = isolated / "toolstream.toml"
        project.write_text("[chat]\nmax_steps = 2\n")
        env_file = isolated / "env.toml"
        env_file.write_text("[chat]\nmax_steps = 3\n")
        monkeypatch.setenv("TOOLSTREAM_CONFIG", str(env_file))
        assert load_config().chat.max_steps == 3
        assert load_config(path=project).chat.max_steps == 2

    def test_overrides_beat_file(self, isolated):
        toml_file = isolated / "cfg.toml"
        toml_file.write_text("[chat]\nmax_steps = 2\n")
        cfg = load_config(path=toml_file, overrides={"chat": {"max_steps": 5}})
        assert cfg.chat.max_steps == 5


# ─── Environment Variables ────────────────────────────────────


class TestEnvVarResolution:
    def test_config_env_path(self, isolated, monkeypatch):
        toml_file = isolated / "env.toml"
        toml_file.write_text("[api]\nport = 9000\n")
        monkeypatch.setenv("TOOLSTREAM_CONFIG", str(toml_file))
        assert load_config().api.port == 9000

    def test_config_env_missing_file_raises(self, isolated, monkeypatch):
        monkeypatch.setenv("TOOLSTREAM_CONFIG", str(isolated / "nope.toml"))
        with pytest.raises(ConfigError, match="non-existent"):
            load_config()

    def test_registry_urls_and_key_from_env(self, isolated, monkeypatch):
        monkeypatch.setenv("MCP_PROD_URL", "https://prod.example.test/mcp")
        monkeypatch.setenv("MCP_TEST_URL", "https://test.example.test/mcp")
        monkeypatch.setenv("MCP_API_KEY", "secret")
        cfg = load_config()
        assert cfg.registries["prod"].url == "https://prod.example.test/mcp"
        assert cfg.registries["test"].url == "https://test.example.test/mcp"
        assert cfg.registries["prod"].api_key == "secret"

    def test_provider_key_from_env(self, isolated, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")
        assert load_config().provider.api_key == "sk-from-env"

    def test_explicit_value_not_overwritten(self, isolated, monkeypatch):
        monkeypatch.setenv("MCP_PROD_URL", "https://from-env.test")
        cfg = load_config(overrides={"registries": {"prod": {"url": "https://explicit.test"}}})
        assert cfg.registries["prod"].url == "https://explicit.test"
