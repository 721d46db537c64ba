"""Pydantic models for toolstream configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

DEFAULT_SYSTEM_POLICY: list[str] = [
    "You are a helpful assistant with access to remote tools.",
    "When you call tools, always produce a clear, human-readable final answer.",
    "Do not dump raw JSON. Summarize the results in concise prose with markdown.",
    "For list-like data, prefer a small table with a few key columns.",
    "If there are many items, show a short summary (counts) and up to 10 "
    "examples unless the user asks for more.",
    "Use bullet lists or tables where helpful; keep output skimmable.",
]


class RegistryConfig(BaseModel):
    """Connection settings for one stage's remote tool registry."""

    url: str | None = None
    url_env: str | None = None
    api_key: str | None = None
    api_key_env: str | None = "MCP_API_KEY"
    api_key_header: str = "x-api-key"
    timeout: float = 30.0


class ProviderConfig(BaseModel):
    """Configuration for the model provider."""

    api_key: str | None = None
    api_key_env: str | None = "OPENAI_API_KEY"
    base_url: str | None = None
    default_model: str = "gpt-4o"
    max_tokens: int = 4096
    temperature: float = 0.7


class ChatConfig(BaseModel):
    """Completion and response-stream settings."""

    max_steps: int = Field(default=1, ge=1)
    send_sources: bool = True
    send_reasoning: bool = True
    system_policy: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SYSTEM_POLICY)
    )

    @property
    def system_prompt(self) -> str:
        return "\n".join(self.system_policy)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: str = ""
    structured: bool = False


class ApiConfig(BaseModel):
    """HTTP server settings."""

    host: str = "127.0.0.1"
    port: int = 8080
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"]
    )


class ToolstreamConfig(BaseModel):
    """Top-level configuration for toolstream."""

    registries: dict[str, RegistryConfig] = Field(
        default_factory=lambda: {
            "prod": RegistryConfig(url_env="MCP_PROD_URL"),
            "test": RegistryConfig(url_env="MCP_TEST_URL"),
        }
    )
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @field_validator("registries")
    @classmethod
    def _fill_default_stages(
        cls, value: dict[str, RegistryConfig]
    ) -> dict[str, RegistryConfig]:
        """Keep both stages present when a file configures only one."""
        value.setdefault("prod", RegistryConfig(url_env="MCP_PROD_URL"))
        value.setdefault("test", RegistryConfig(url_env="MCP_TEST_URL"))
        return value
