"""Configuration helpers for the HNS registration client."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).resolve().parent / "data"

DEFAULT_REGISTRY_ADDRESS = "0x00000000000C2E074eC69A0dFb2997BA6C7d2e1e"
DEFAULT_BASE_REGISTRAR_ADDRESS = "0x57f1887a8BF19b14fC0dF6Fd9B2acc9Af147eA85"
ONE_YEAR_SECONDS = 365 * 24 * 60 * 60


def _parse_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw, 0)
    except ValueError:
        logger.warning("Invalid integer for %s: %s", name, raw)
        return default


def _parse_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid number for %s: %s", name, raw)
        return default


def _parse_optional_int_env(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw, 0)
    except ValueError:
        logger.warning("Invalid integer for %s: %s", name, raw)
        return None


def _parse_json_env(name: str) -> Optional[Any]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Invalid JSON for %s", name)
        return None


def _parse_csv_env(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name) or ""
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def load_mapping(path: str | Path) -> Dict[str, Any]:
    """Read a YAML or JSON document into a mapping."""

    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return data


@dataclass(frozen=True)
class HNSSettings:
    """Runtime settings for chain access, indexer access and registration policy."""

    rpc_url: str = "http://localhost:8545"
    chain_id: Optional[int] = None
    rpc_timeout: float = 30.0
    rpc_retries: int = 3
    rpc_backoff: float = 1.0
    indexer_url: Optional[str] = None
    indexer_timeout: float = 10.0
    indexer_page_size: int = 100
    indexer_max_pages: int = 10
    tld_source: str = "local"
    tld_config_path: Path = _DATA_DIR / "tlds.json"
    tld_config_url: Optional[str] = None
    tld_cache_ttl: float = 300.0
    supported_tlds: Tuple[str, ...] = ()
    abi_dir: Optional[Path] = None
    registry_address: str = DEFAULT_REGISTRY_ADDRESS
    base_registrar_address: str = DEFAULT_BASE_REGISTRAR_ADDRESS
    commit_safety_buffer: int = 5
    default_min_commitment_age: int = 60
    default_max_commitment_age: int = 86400
    commit_gas_limit: int = 50_000
    default_gas_limit: int = 500_000
    gas_buffer_pct: int = 5
    gas_headroom_pct: int = 120
    price_multipliers: Dict[str, int] = field(default_factory=dict)
    log_scan_blocks: int = 10_000
    expected_min_domains: Optional[int] = None
    ownership_cache_ttl: float = 300.0
    min_label_length: int = 3
    default_duration: int = ONE_YEAR_SECONDS

    def __post_init__(self) -> None:
        if self.tld_source not in {"local", "remote"}:
            raise ValueError("tld_source must be 'local' or 'remote'")
        if self.tld_source == "remote" and not self.tld_config_url:
            raise ValueError("tld_config_url is required when tld_source is 'remote'")
        if self.rpc_retries < 1:
            raise ValueError("rpc_retries must be at least 1")
        if self.rpc_timeout <= 0:
            raise ValueError("rpc_timeout must be positive")
        if self.commit_safety_buffer < 0:
            raise ValueError("commit_safety_buffer must be non-negative")
        if not 0 <= self.gas_buffer_pct <= 100:
            raise ValueError("gas_buffer_pct must be between 0 and 100")
        if self.gas_headroom_pct < 100:
            raise ValueError("gas_headroom_pct must be at least 100")
        if self.log_scan_blocks <= 0:
            raise ValueError("log_scan_blocks must be positive")
        for tld, multiplier in self.price_multipliers.items():
            if not isinstance(multiplier, int) or multiplier <= 0:
                raise ValueError(f"price multiplier for {tld} must be a positive integer")

    @classmethod
    def from_env(cls) -> "HNSSettings":
        """Build settings from ``HNS_*`` environment variables.

        When ``HNS_CONFIG_FILE`` names a YAML or JSON document its keys are
        applied first and environment variables override them.
        """

        base = cls()
        config_file = os.getenv("HNS_CONFIG_FILE")
        if config_file:
            base = base.merged(load_mapping(config_file))

        multipliers = _parse_json_env("HNS_PRICE_MULTIPLIERS")
        abi_dir = os.getenv("HNS_ABI_DIR")
        tld_path = os.getenv("HNS_TLD_CONFIG_PATH")
        supported = _parse_csv_env("HNS_SUPPORTED_TLDS")
        expected = _parse_optional_int_env("HNS_EXPECTED_MIN_DOMAINS")
        return replace(
            base,
            rpc_url=os.getenv("HNS_RPC_URL") or base.rpc_url,
            chain_id=_parse_optional_int_env("HNS_CHAIN_ID") or base.chain_id,
            rpc_timeout=_parse_float_env("HNS_RPC_TIMEOUT", base.rpc_timeout),
            rpc_retries=_parse_int_env("HNS_RPC_RETRIES", base.rpc_retries),
            rpc_backoff=_parse_float_env("HNS_RPC_BACKOFF", base.rpc_backoff),
            indexer_url=os.getenv("HNS_INDEXER_URL") or base.indexer_url,
            indexer_timeout=_parse_float_env("HNS_INDEXER_TIMEOUT", base.indexer_timeout),
            indexer_page_size=_parse_int_env("HNS_INDEXER_PAGE_SIZE", base.indexer_page_size),
            indexer_max_pages=_parse_int_env("HNS_INDEXER_MAX_PAGES", base.indexer_max_pages),
            tld_source=(os.getenv("HNS_TLD_SOURCE") or base.tld_source).strip().lower(),
            tld_config_path=Path(tld_path) if tld_path else base.tld_config_path,
            tld_config_url=os.getenv("HNS_TLD_CONFIG_URL") or base.tld_config_url,
            tld_cache_ttl=_parse_float_env("HNS_TLD_CACHE_TTL", base.tld_cache_ttl),
            supported_tlds=supported or base.supported_tlds,
            abi_dir=Path(abi_dir) if abi_dir else base.abi_dir,
            registry_address=os.getenv("HNS_REGISTRY_ADDRESS") or base.registry_address,
            base_registrar_address=os.getenv("HNS_BASE_REGISTRAR_ADDRESS") or base.base_registrar_address,
            commit_safety_buffer=_parse_int_env("HNS_COMMIT_SAFETY_BUFFER", base.commit_safety_buffer),
            default_min_commitment_age=_parse_int_env(
                "HNS_DEFAULT_MIN_COMMITMENT_AGE", base.default_min_commitment_age
            ),
            default_max_commitment_age=_parse_int_env(
                "HNS_DEFAULT_MAX_COMMITMENT_AGE", base.default_max_commitment_age
            ),
            commit_gas_limit=_parse_int_env("HNS_COMMIT_GAS_LIMIT", base.commit_gas_limit),
            default_gas_limit=_parse_int_env("HNS_DEFAULT_GAS_LIMIT", base.default_gas_limit),
            gas_buffer_pct=_parse_int_env("HNS_GAS_BUFFER_PCT", base.gas_buffer_pct),
            gas_headroom_pct=_parse_int_env("HNS_GAS_HEADROOM_PCT", base.gas_headroom_pct),
            price_multipliers=_normalise_multipliers(multipliers) if multipliers else base.price_multipliers,
            log_scan_blocks=_parse_int_env("HNS_LOG_SCAN_BLOCKS", base.log_scan_blocks),
            expected_min_domains=expected if expected is not None else base.expected_min_domains,
            ownership_cache_ttl=_parse_float_env("HNS_OWNERSHIP_CACHE_TTL", base.ownership_cache_ttl),
            min_label_length=_parse_int_env("HNS_MIN_LABEL_LENGTH", base.min_label_length),
            default_duration=_parse_int_env("HNS_DEFAULT_DURATION", base.default_duration),
        )

    def merged(self, data: Dict[str, Any]) -> "HNSSettings":
        """Return a copy with known keys from ``data`` applied."""

        known = {item.name for item in fields(self)}
        updates: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning("Ignoring unknown settings key %s", key)
                continue
            if key in {"tld_config_path", "abi_dir"} and value is not None:
                value = Path(value)
            elif key == "supported_tlds" and value is not None:
                value = tuple(value)
            elif key == "price_multipliers" and value is not None:
                value = _normalise_multipliers(value)
            updates[key] = value
        return replace(self, **updates)


def _normalise_multipliers(raw: Any) -> Dict[str, int]:
    if not isinstance(raw, dict):
        logger.warning("Price multipliers must be a mapping, ignoring %r", raw)
        return {}
    result: Dict[str, int] = {}
    for tld, value in raw.items():
        key = str(tld).lower()
        if not key.startswith("."):
            key = f".{key}"
        result[key] = int(value)
    return result


@lru_cache(maxsize=1)
def get_settings() -> HNSSettings:
    """Return process-wide settings loaded from the environment."""

    return HNSSettings.from_env()


__all__ = [
    "DEFAULT_BASE_REGISTRAR_ADDRESS",
    "DEFAULT_REGISTRY_ADDRESS",
    "HNSSettings",
    "ONE_YEAR_SECONDS",
    "get_settings",
    "load_mapping",
]
