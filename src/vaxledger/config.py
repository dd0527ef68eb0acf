"""Runtime settings — read once at process start from the environment.

A ``.env`` file is honoured via python-dotenv. Everything the pipeline
needs from the outside world (ledger RPC, signing key, content store,
data directory) is described here and handed to ``ImmunizationService``
explicitly; no component reads the environment on its own.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from vaxledger.errors import ConfigurationError


ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_DIR = ROOT / "config"
DEFAULT_SCHEDULE_PATH = DEFAULT_CONFIG_DIR / "immunization_schedule.json"
DEFAULT_DATA_DIR = ROOT / "data"

VANAR_VANGUARD_CHAIN_ID = 78600


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration."""
    data_dir: Optional[Path] = None
    schedule_path: Path = DEFAULT_SCHEDULE_PATH
    ledger_rpc_url: Optional[str] = None
    ledger_private_key: Optional[str] = None
    ledger_chain_id: int = VANAR_VANGUARD_CHAIN_ID
    records_contract_address: Optional[str] = None
    reward_contract_address: Optional[str] = None
    ledger_explorer_url: str = "https://explorer.vanarchain.com/tx"
    ledger_timeout_seconds: float = 10.0
    pinata_jwt: Optional[str] = None
    pinata_gateway: Optional[str] = None
    content_store_dir: Optional[Path] = None
    http_timeout_seconds: float = 15.0
    reward_amount: Decimal = Decimal("500")
    anchor_in_background: bool = False
    log_level: str = "INFO"

    @property
    def ledger_configured(self) -> bool:
        return bool(self.ledger_rpc_url and self.ledger_private_key)

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> Settings:
        """Build settings from environment variables (and an optional .env)."""
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()

        data_dir = os.getenv("VAXLEDGER_DATA_DIR")
        schedule_path = os.getenv("VAXLEDGER_SCHEDULE_PATH")
        content_dir = os.getenv("CONTENT_STORE_DIR")

        return cls(
            data_dir=Path(data_dir) if data_dir else None,
            schedule_path=Path(schedule_path) if schedule_path else DEFAULT_SCHEDULE_PATH,
            ledger_rpc_url=os.getenv("LEDGER_RPC_URL") or os.getenv("BLOCKCHAIN_RPC_URL"),
            ledger_private_key=os.getenv("LEDGER_PRIVATE_KEY") or os.getenv("PRIVATE_KEY"),
            ledger_chain_id=_int_env("LEDGER_CHAIN_ID", VANAR_VANGUARD_CHAIN_ID),
            records_contract_address=os.getenv("RECORDS_CONTRACT_ADDRESS"),
            reward_contract_address=os.getenv("REWARD_CONTRACT_ADDRESS"),
            ledger_explorer_url=os.getenv(
                "LEDGER_EXPLORER_URL", "https://explorer.vanarchain.com/tx"
            ),
            ledger_timeout_seconds=_float_env("LEDGER_TIMEOUT_SECONDS", 10.0),
            pinata_jwt=os.getenv("PINATA_JWT"),
            pinata_gateway=os.getenv("PINATA_GATEWAY"),
            content_store_dir=Path(content_dir) if content_dir else None,
            http_timeout_seconds=_float_env("HTTP_TIMEOUT_SECONDS", 15.0),
            reward_amount=_decimal_env("REWARD_AMOUNT", Decimal("500")),
            anchor_in_background=_bool_env("ANCHOR_IN_BACKGROUND", False),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def _decimal_env(name: str, default: Decimal) -> Decimal:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ConfigurationError(f"{name} must be a decimal amount, got {raw!r}")


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}
