"""
Configuration module for PermitVault.

Centralizes all configuration with environment variable support and
validation.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from .ledger import InMemoryReplayLedger, ReplayLedger, SqliteReplayLedger

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("PERMITVAULT_ENV", "dev")  # dev|stage|prod

# Runtime network discriminator
NETWORK_ID = int(os.getenv("PERMITVAULT_NETWORK_ID", "1"))

# Identity of the vault served by this process
VAULT_IDENTITY = os.getenv("PERMITVAULT_VAULT_IDENTITY", "0x" + "00" * 31 + "01")

# Authority public key file
AUTHORITY_KEY_PATH = os.getenv("PERMITVAULT_AUTHORITY_KEY_PATH", "trust/authority_key.json")

# Replay ledger
LEDGER_BACKEND = os.getenv("PERMITVAULT_LEDGER_BACKEND", "memory")  # memory|sqlite
LEDGER_PATH = os.getenv("PERMITVAULT_LEDGER_PATH", "data/replay_ledger.db")

# Logging
LOG_LEVEL = os.getenv("PERMITVAULT_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("PERMITVAULT_LOG_JSON", "true").lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of the configuration."""
    env: str = "dev"
    network_id: int = 1
    vault_identity: str = "0x" + "00" * 31 + "01"
    authority_key_path: str = "trust/authority_key.json"
    ledger_backend: str = "memory"
    ledger_path: str = "data/replay_ledger.db"
    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_env(cls) -> 'Settings':
        """Re-read the environment; module constants reflect import time only."""
        return cls(
            env=os.getenv("PERMITVAULT_ENV", ENV),
            network_id=int(os.getenv("PERMITVAULT_NETWORK_ID", str(NETWORK_ID))),
            vault_identity=os.getenv("PERMITVAULT_VAULT_IDENTITY", VAULT_IDENTITY),
            authority_key_path=os.getenv("PERMITVAULT_AUTHORITY_KEY_PATH", AUTHORITY_KEY_PATH),
            ledger_backend=os.getenv("PERMITVAULT_LEDGER_BACKEND", LEDGER_BACKEND),
            ledger_path=os.getenv("PERMITVAULT_LEDGER_PATH", LEDGER_PATH),
            log_level=os.getenv("PERMITVAULT_LOG_LEVEL", LOG_LEVEL),
            log_json=os.getenv("PERMITVAULT_LOG_JSON", "true" if LOG_JSON else "false").lower()
            in ("1", "true", "yes"),
        )


# ============================================================
# Validation
# ============================================================

def validate_settings(settings: Settings) -> Dict[str, bool]:
    """
    Validate that all required configuration files exist.
    Returns dict of name -> exists.
    """
    paths = {"authority_key": settings.authority_key_path}
    if settings.ledger_backend == "sqlite":
        paths["ledger_dir"] = str(Path(settings.ledger_path).parent)
    return {name: Path(path).exists() for name, path in paths.items()}


def build_ledger(settings: Settings) -> ReplayLedger:
    """Create the replay ledger backend named by the settings."""
    if settings.ledger_backend == "sqlite":
        return SqliteReplayLedger(settings.ledger_path)
    if settings.ledger_backend == "memory":
        return InMemoryReplayLedger()
    raise ValueError(f"Unknown ledger backend: {settings.ledger_backend}")
