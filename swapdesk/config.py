import json

from pathlib import Path
from typing import Annotated, Any, List

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Aggregator (Jupiter) endpoints, tried in order
    jupiter_quote_endpoints: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: [
            "https://quote-api.jup.ag/v6",
            "https://lite-api.jup.ag/swap/v1",
        ],
        description="Ordered base URLs serving /quote (and /swap unless overridden)",
    )
    jupiter_swap_endpoints: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        description="Ordered base URLs serving /swap (empty: reuse quote endpoints)",
    )
    jupiter_api_key: str = Field(
        default="",
        description="Sent as x-api-key when set (keyed or proxied deployments)",
        validation_alias=AliasChoices("jupiter_api_key", "JUPITER_API_KEY", "JUP_API_KEY"),
    )
    jupiter_price_url: str = Field(
        default="https://lite-api.jup.ag/price/v2",
        description="Price-only fallback used when every quote endpoint fails (empty disables)",
    )
    jupiter_token_api_url: str = Field(
        default="https://tokens.jup.ag",
        description="Token metadata API base URL",
    )
    aggregator_timeout_ms: int = Field(default=8000, ge=100, description="Per-attempt timeout")
    aggregator_max_attempts: int = Field(default=3, ge=1, description="Cap on endpoints tried per call")
    wrap_and_unwrap_sol: bool = Field(default=True, description="Pass wrapAndUnwrapSol on swap build")
    dynamic_compute_unit_limit: bool = Field(
        default=True,
        description="Pass dynamicComputeUnitLimit on swap build",
    )

    # Quoting
    quote_ttl_seconds: float = Field(default=60.0, gt=0, description="Quote freshness window")
    quote_debounce_ms: int = Field(default=450, ge=0, description="Debounce window before re-quoting")
    quote_transient_retries: int = Field(
        default=3,
        ge=0,
        description="Re-quotes after a transient upstream failure, one per debounce window",
    )
    default_slippage_bps: int = Field(default=100, ge=0, le=10_000, description="Default slippage (1%)")
    impact_medium_threshold: float = Field(default=1.0, ge=0, description="Price impact % where severity turns medium")
    impact_high_threshold: float = Field(default=3.0, ge=0, description="Price impact % where severity turns high")

    # Solana RPC
    solana_mainnet_rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com",
        description="Mainnet RPC URL",
    )
    solana_devnet_rpc_url: str = Field(
        default="https://api.devnet.solana.com",
        description="Devnet RPC URL",
    )
    solana_commitment: str = Field(default="confirmed", description="Confirmation level awaited after broadcast")
    broadcast_skip_preflight: bool = Field(default=True, description="skipPreflight on sendTransaction")
    broadcast_max_retries: int = Field(default=2, ge=0, description="maxRetries on sendTransaction")
    confirmation_timeout_seconds: float = Field(default=60.0, gt=0, description="Confirmation wait budget")

    # Persistence (Supabase)
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_key: str = Field(
        default="",
        description="Supabase anon/service key",
        validation_alias=AliasChoices("supabase_key", "SUPABASE_KEY", "SUPABASE_ANON_KEY"),
    )
    persist_retries: int = Field(
        default=0,
        ge=0,
        le=5,
        description="Extra attempts of the trade record write after a confirmed swap",
    )

    # Token metadata cache
    token_cache_path: str = Field(
        default="",
        description="JSON file backing the token metadata cache (empty: memory only)",
    )
    token_cache_ttl_seconds: int = Field(default=86_400, description="Persisted token metadata lifetime")

    @field_validator("jupiter_quote_endpoints", "jupiter_swap_endpoints", mode="before")
    @classmethod
    def _split_endpoints(cls, value: Any) -> Any:
        if isinstance(value, str):
            if value.strip().startswith("["):
                return json.loads(value)
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def has_jupiter_key(self) -> bool:
        return bool(self.jupiter_api_key)

    def rpc_url_for(self, network: str) -> str:
        if network == "mainnet":
            return self.solana_mainnet_rpc_url
        return self.solana_devnet_rpc_url


# Global settings instance
settings = Settings()
