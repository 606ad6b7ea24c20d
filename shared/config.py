"""
Shared configuration management for the credential gate.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigurationError


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="GATE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Local signal store
    signal_store_backend: str = Field(default="memory", description="memory or redis")
    redis_url: str = Field(default="redis://localhost:6379/0")


class GateConfig(BaseConfig):
    """Credential gate configuration."""

    service_name: str = "gate"
    host: str = "0.0.0.0"
    port: int = 8020

    # Upstream indexer
    indexer_api_key: str = Field(default="")
    indexer_rpc_url: str = Field(default="https://devnet.helius-rpc.com")
    indexer_enhanced_url: str = Field(default="https://api-devnet.helius-rpc.com/v0")
    upstream_timeout_seconds: float = Field(default=10.0, gt=0)

    # Credential
    required_credential_name: str = Field(default="ZKChat VIP Access Pass")
    default_asset_id: str = Field(default="zkchat-vip-access")

    # Cache TTLs (seconds)
    ownership_cache_ttl: int = Field(default=300, gt=0)
    commitment_cache_ttl: int = Field(default=3600, gt=0)
    verification_cache_ttl: int = Field(default=600, gt=0)
    asset_listing_cache_ttl: int = Field(default=300, gt=0)
    transaction_cache_ttl: int = Field(default=1800, gt=0)
    cache_sweep_interval: int = Field(default=120, ge=0)
    cache_max_entries: int = Field(default=10_000, gt=0)
    decision_history_size: int = Field(default=10_000, gt=0)

    # Commitments
    proof_lifetime_ms: int = Field(default=3_600_000, gt=0)

    # Request pacing
    max_jitter_ms: int = Field(default=500, ge=0)
    fallback_jitter_ms: int = Field(default=200, ge=0)

    def validate_required(self) -> "GateConfig":
        """Fail fast on settings the gate cannot run without."""
        missing = [
            name for name in ("indexer_api_key", "indexer_rpc_url", "indexer_enhanced_url")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                "Missing required gate settings",
                details={"missing": [f"GATE_{name.upper()}" for name in missing]}
            )
        if self.signal_store_backend not in ("memory", "redis"):
            raise ConfigurationError(
                f"Unknown signal store backend: {self.signal_store_backend}",
                details={"signal_store_backend": self.signal_store_backend}
            )
        return self


def get_config(**overrides) -> GateConfig:
    """Get gate configuration from the environment, with optional overrides."""
    return GateConfig(**overrides)


def mask_secret(value: Optional[str]) -> str:
    """Render a secret for logs without disclosing it."""
    if not value:
        return "<unset>"
    return f"{value[:4]}..." if len(value) > 8 else "***"
