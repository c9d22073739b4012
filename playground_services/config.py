from __future__ import annotations

"""
Configuration loader for ZK Playground Services.

- Reads environment variables (optionally from `.env`) via pydantic-settings.
- Provides strongly typed sub-configs for storage, IPFS and the ledger network.
- Exposes a cached `get_settings()` accessor.

Environment variables (high-level):
    LOG_LEVEL                     (str, default "INFO") - Logging level

Storage:
    STORAGE_DIR                   (str, default "./.playground")
    STORAGE_DB                    (str, optional)       - SQLite file; default <STORAGE_DIR>/playground.db

IPFS:
    IPFS_API_URL                  (str)                 - Primary provider API base (…/api/v0)
    IPFS_PROJECT_ID               (str, optional)       - Basic-auth user for the provider
    IPFS_PROJECT_SECRET           (str, optional)       - Basic-auth secret for the provider
    IPFS_GATEWAYS                 (csv|json list)       - Read-only gateways, in priority order
    GATEWAY_TIMEOUT_S             (float, default 10)   - Per-gateway request timeout
    PUBLIC_BASE_URL               (str)                 - Base for share links of locally stored circuits

Ledger:
    NETWORK                       (devnet|testnet|mainnet-beta, default devnet)
    SOLANA_RPC_URL                (str, optional)       - Override for the devnet endpoint
    TESTNET_RPC_URL / MAINNET_RPC_URL (str, optional)
    VERIFIER_PROGRAM_ID           (base58, optional)    - Program owning verifier accounts
    CONFIRM_TIMEOUT_S             (float, default 30)
    CONFIRM_POLL_INTERVAL_S       (float, default 0.5)
    RPC_TIMEOUT_S                 (float, default 15)

Notes
-----
- Lists accept comma-separated strings or JSON arrays.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.chain import NetworkEnvironment

# ----------------------------- Helpers & Models ------------------------------ #

DEFAULT_GATEWAYS: List[str] = [
    "https://ipfs.io/ipfs/",
    "https://gateway.pinata.cloud/ipfs/",
    "https://cloudflare-ipfs.com/ipfs/",
    "https://dweb.link/ipfs/",
]

DEFAULT_RPC_URLS: Dict[NetworkEnvironment, str] = {
    NetworkEnvironment.DEVNET: "https://api.devnet.solana.com",
    NetworkEnvironment.TESTNET: "https://api.testnet.solana.com",
    NetworkEnvironment.MAINNET: "https://api.mainnet-beta.solana.com",
}

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"


def _parse_list(val: Optional[str | List[str]], *, default: List[str]) -> List[str]:
    if val is None:
        return list(default)
    if isinstance(val, list):
        return val
    s = val.strip()
    if not s:
        return []
    # Try JSON first
    if s.startswith("[") and s.endswith("]"):
        try:
            parsed = json.loads(s)
            return [str(x) for x in parsed]
        except ValueError:
            pass
    # Fallback: CSV
    return [x.strip() for x in s.split(",") if x.strip()]


class StorageConfig(BaseModel):
    storage_dir: Path = Path("./.playground")
    db_path: Optional[Path] = Field(
        default=None, description="SQLite file; defaults to <storage_dir>/playground.db."
    )

    @field_validator("storage_dir", mode="before")
    @classmethod
    def _coerce_path(cls, v):
        return Path(v) if v is not None else Path("./.playground")

    @property
    def resolved_db_path(self) -> Path:
        return self.db_path or (self.storage_dir / "playground.db")


class IpfsConfig(BaseModel):
    api_url: str = "https://ipfs.infura.io:5001/api/v0"
    project_id: Optional[str] = None
    project_secret: Optional[str] = None
    gateways: List[str] = Field(default_factory=lambda: list(DEFAULT_GATEWAYS))
    gateway_timeout_s: float = Field(10.0, gt=0)
    upload_timeout_s: float = Field(30.0, gt=0)
    public_base_url: str = "http://localhost:3000"

    @field_validator("gateways", mode="before")
    @classmethod
    def _coerce_list(cls, v):
        return _parse_list(v, default=DEFAULT_GATEWAYS)


class ChainConfig(BaseModel):
    network: NetworkEnvironment = NetworkEnvironment.DEVNET
    rpc_urls: Dict[NetworkEnvironment, str] = Field(
        default_factory=lambda: dict(DEFAULT_RPC_URLS)
    )
    verifier_program_id: str = SYSTEM_PROGRAM_ID
    confirm_timeout_s: float = Field(30.0, gt=0)
    poll_interval_s: float = Field(0.5, gt=0)
    rpc_timeout_s: float = Field(15.0, gt=0)

    def rpc_url(self, env: NetworkEnvironment) -> str:
        return self.rpc_urls.get(env) or DEFAULT_RPC_URLS[env]


# --------------------------------- Settings ---------------------------------- #


class Settings(BaseSettings):
    log_level: str = Field(
        "INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # Sub-configs
    storage: StorageConfig = Field(default_factory=StorageConfig)
    ipfs: IpfsConfig = Field(default_factory=IpfsConfig)
    chain: ChainConfig = Field(default_factory=ChainConfig)

    # pydantic-settings
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # --- Env bridges for convenience (.env keys -> nested models) ------------
    # Storage
    STORAGE_DIR: Optional[str] = Field(default=None, alias="STORAGE_DIR")
    STORAGE_DB: Optional[str] = Field(default=None, alias="STORAGE_DB")

    # IPFS
    IPFS_API_URL: Optional[str] = Field(default=None, alias="IPFS_API_URL")
    IPFS_PROJECT_ID: Optional[str] = Field(default=None, alias="IPFS_PROJECT_ID")
    IPFS_PROJECT_SECRET: Optional[str] = Field(default=None, alias="IPFS_PROJECT_SECRET")
    IPFS_GATEWAYS: Optional[str] = Field(default=None, alias="IPFS_GATEWAYS")
    GATEWAY_TIMEOUT_S: Optional[float] = Field(default=None, alias="GATEWAY_TIMEOUT_S")
    PUBLIC_BASE_URL: Optional[str] = Field(default=None, alias="PUBLIC_BASE_URL")

    # Ledger
    NETWORK: Optional[str] = Field(default=None, alias="NETWORK")
    SOLANA_RPC_URL: Optional[str] = Field(default=None, alias="SOLANA_RPC_URL")
    TESTNET_RPC_URL: Optional[str] = Field(default=None, alias="TESTNET_RPC_URL")
    MAINNET_RPC_URL: Optional[str] = Field(default=None, alias="MAINNET_RPC_URL")
    VERIFIER_PROGRAM_ID: Optional[str] = Field(default=None, alias="VERIFIER_PROGRAM_ID")
    CONFIRM_TIMEOUT_S: Optional[float] = Field(default=None, alias="CONFIRM_TIMEOUT_S")
    CONFIRM_POLL_INTERVAL_S: Optional[float] = Field(
        default=None, alias="CONFIRM_POLL_INTERVAL_S"
    )
    RPC_TIMEOUT_S: Optional[float] = Field(default=None, alias="RPC_TIMEOUT_S")

    @model_validator(mode="after")
    def _apply_env_bridges(self) -> "Settings":
        if self.STORAGE_DIR:
            self.storage.storage_dir = Path(self.STORAGE_DIR)
        if self.STORAGE_DB:
            self.storage.db_path = Path(self.STORAGE_DB)

        if self.IPFS_API_URL:
            self.ipfs.api_url = self.IPFS_API_URL.rstrip("/")
        if self.IPFS_PROJECT_ID is not None:
            self.ipfs.project_id = self.IPFS_PROJECT_ID or None
        if self.IPFS_PROJECT_SECRET is not None:
            self.ipfs.project_secret = self.IPFS_PROJECT_SECRET or None
        if self.IPFS_GATEWAYS is not None:
            self.ipfs.gateways = _parse_list(self.IPFS_GATEWAYS, default=self.ipfs.gateways)
        if self.GATEWAY_TIMEOUT_S is not None:
            self.ipfs.gateway_timeout_s = float(self.GATEWAY_TIMEOUT_S)
        if self.PUBLIC_BASE_URL:
            self.ipfs.public_base_url = self.PUBLIC_BASE_URL.rstrip("/")

        if self.NETWORK:
            self.chain.network = NetworkEnvironment.parse(self.NETWORK)
        for env, url in (
            (NetworkEnvironment.DEVNET, self.SOLANA_RPC_URL),
            (NetworkEnvironment.TESTNET, self.TESTNET_RPC_URL),
            (NetworkEnvironment.MAINNET, self.MAINNET_RPC_URL),
        ):
            if url:
                self.chain.rpc_urls[env] = url
        if self.VERIFIER_PROGRAM_ID:
            self.chain.verifier_program_id = self.VERIFIER_PROGRAM_ID
        if self.CONFIRM_TIMEOUT_S is not None:
            self.chain.confirm_timeout_s = float(self.CONFIRM_TIMEOUT_S)
        if self.CONFIRM_POLL_INTERVAL_S is not None:
            self.chain.poll_interval_s = float(self.CONFIRM_POLL_INTERVAL_S)
        if self.RPC_TIMEOUT_S is not None:
            self.chain.rpc_timeout_s = float(self.RPC_TIMEOUT_S)
        return self


# ------------------------------- Accessor API -------------------------------- #


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    s = Settings()  # pydantic-settings will read .env automatically
    # Ensure storage directory exists
    try:
        s.storage.storage_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        # Non-fatal: path may be read-only in some environments
        pass
    return s


__all__ = [
    "Settings",
    "StorageConfig",
    "IpfsConfig",
    "ChainConfig",
    "DEFAULT_GATEWAYS",
    "DEFAULT_RPC_URLS",
    "SYSTEM_PROGRAM_ID",
    "get_settings",
]
