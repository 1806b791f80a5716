"""Configuration and settings management using pydantic-settings."""
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PACKAGES = ["n8n-nodes-base", "@n8n/n8n-nodes-langchain"]


class Settings(BaseSettings):
    """Refresh settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_prefix="N8N_REGISTRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core settings
    env: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format: json or text")

    # Remote registries
    official_url: str = Field(
        default="https://api.n8n.io/api/nodes",
        description="Paginated official node registry endpoint",
    )
    community_url: str = Field(
        default="https://api.n8n.io/api/community-nodes",
        description="Community node registry endpoint (not paginated)",
    )
    page_size: int = Field(
        default=500,
        description="Records per page requested from the official registry",
    )
    request_timeout_s: float = Field(
        default=30,
        description="Timeout for every registry request in seconds",
    )

    # Output
    output_dir: Path = Field(
        default=Path("references"),
        description="Directory receiving the three cache artifacts",
    )

    # Installed packages
    packages: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PACKAGES),
        description="npm packages scanned for node versions, in merge order",
    )
    packages_dir: Path | None = Field(
        default=None,
        description="Existing node_modules to scan instead of installing into a temp dir",
    )
    npm_executable: str = Field(default="npm", description="npm binary")
    node_executable: str = Field(default="node", description="node binary")
    install_timeout_s: int = Field(
        default=600,
        description="Timeout for the npm install step in seconds",
    )

    # Version resolver
    dynamic_probe: bool = Field(
        default=True,
        description="Load node modules with node to read their description",
    )
    probe_timeout_s: int = Field(
        default=20,
        description="Timeout for a single dynamic probe in seconds",
    )
    resolver_workers: int = Field(
        default=8,
        description="Concurrent file probes per package",
    )

    # Property slimming
    max_schema_depth: int = Field(
        default=32,
        description="Nesting depth at which a property tree is treated as malformed",
    )

    @field_validator("page_size", "resolver_workers", "max_schema_depth")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate that counts and limits are positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate the log format name."""
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
