"""Resolve per-TLD contract addresses and interfaces."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from eth_utils import is_address, to_checksum_address

from .abis import DEFAULT_ABIS
from .config import HNSSettings, get_settings
from .errors import InterfaceLoadError
from .logging_utils import log_event
from .tld import TLDDirectory, TLDRecord

logger = logging.getLogger(__name__)


class ContractRole(str, Enum):
    """Contracts the client talks to."""

    REGISTRAR_CONTROLLER = "RegistrarController"
    NAME_WRAPPER = "NameWrapper"
    PUBLIC_RESOLVER = "PublicResolver"
    BASE_REGISTRAR = "BaseRegistrar"
    REGISTRY = "Registry"

    @property
    def shared(self) -> bool:
        return self in (ContractRole.BASE_REGISTRAR, ContractRole.REGISTRY)


@dataclass(frozen=True)
class ContractHandle:
    """Address and ABI for one (TLD, role) pair."""

    tld: str
    role: ContractRole
    address: str
    abi: Tuple[Dict[str, Any], ...]
    abi_source: str = "default"

    def abi_list(self) -> List[Dict[str, Any]]:
        return list(self.abi)


AbiLoader = Callable[[TLDRecord, ContractRole], Sequence[Dict[str, Any]]]


class InterfaceCache:
    """Process-wide cache of resolved handles keyed by (TLD, role)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[Tuple[str, ContractRole], ContractHandle] = {}

    def get(self, tld: str, role: ContractRole) -> Optional[ContractHandle]:
        return self._entries.get((tld, role))

    def put(self, handle: ContractHandle) -> None:
        with self._lock:
            entries = dict(self._entries)
            entries[(handle.tld, handle.role)] = handle
            self._entries = entries

    def invalidate(self, tld: str, role: Optional[ContractRole] = None) -> None:
        with self._lock:
            self._entries = {
                key: value
                for key, value in self._entries.items()
                if not (key[0] == tld and (role is None or key[1] == role))
            }

    def clear(self) -> None:
        with self._lock:
            self._entries = {}

    def __len__(self) -> int:
        return len(self._entries)


def _coerce_abi(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, dict):
        payload = payload.get("abi")
    if not isinstance(payload, list) or not payload:
        raise ValueError("ABI document must be a non-empty list or contain an 'abi' list")
    if not all(isinstance(item, dict) for item in payload):
        raise ValueError("ABI entries must be objects")
    return payload


class ContractResolver:
    """Maps (TLD, role) to a :class:`ContractHandle`.

    Interfaces are produced by a strategy table: a TLD-specific ABI file is
    tried first, then the built-in interface set. Loader failures fall
    through to the next strategy; only exhausting the table raises
    :class:`InterfaceLoadError`.
    """

    def __init__(
        self,
        directory: TLDDirectory,
        *,
        settings: Optional[HNSSettings] = None,
        cache: Optional[InterfaceCache] = None,
        strategies: Optional[Dict[ContractRole, Sequence[Tuple[str, AbiLoader]]]] = None,
    ) -> None:
        self._directory = directory
        self._settings = settings or get_settings()
        self._cache = cache if cache is not None else InterfaceCache()
        default_strategies: List[Tuple[str, AbiLoader]] = [
            ("file", self._load_file_abi),
            ("default", self._load_default_abi),
        ]
        self._strategies: Dict[ContractRole, Sequence[Tuple[str, AbiLoader]]] = {
            role: default_strategies for role in ContractRole
        }
        if strategies:
            self._strategies.update(strategies)

    @property
    def directory(self) -> TLDDirectory:
        return self._directory

    @property
    def cache(self) -> InterfaceCache:
        return self._cache

    def resolve(self, tld: str, role: ContractRole) -> ContractHandle:
        record = self._directory.get(tld)
        cached = self._cache.get(record.tld, role)
        if cached is not None:
            return cached
        address = self._address_for(record, role)
        abi, source = self._load_abi(record, role)
        handle = ContractHandle(
            tld=record.tld,
            role=role,
            address=address,
            abi=tuple(abi),
            abi_source=source,
        )
        self._cache.put(handle)
        log_event(
            logger,
            logging.DEBUG,
            "contracts.resolved",
            tld=record.tld,
            role=role.value,
            address=address,
            source=source,
        )
        return handle

    def _address_for(self, record: TLDRecord, role: ContractRole) -> str:
        if role is ContractRole.REGISTRY:
            raw: Optional[str] = self._settings.registry_address
        elif role is ContractRole.BASE_REGISTRAR:
            raw = self._settings.base_registrar_address
        elif role is ContractRole.REGISTRAR_CONTROLLER:
            raw = record.registrar_controller
        elif role is ContractRole.NAME_WRAPPER:
            raw = record.name_wrapper
        else:
            raw = record.public_resolver
        if not raw or not is_address(raw):
            raise InterfaceLoadError(
                f"No {role.value} address configured for {record.tld}",
                tld=record.tld,
                role=role.value,
            )
        return to_checksum_address(raw)

    def _load_abi(self, record: TLDRecord, role: ContractRole) -> Tuple[List[Dict[str, Any]], str]:
        failures: List[str] = []
        for name, loader in self._strategies.get(role, ()):
            try:
                return _coerce_abi(loader(record, role)), name
            except (OSError, ValueError, KeyError) as exc:
                failures.append(f"{name}: {exc}")
                log_event(
                    logger,
                    logging.DEBUG,
                    "contracts.abi_strategy_failed",
                    tld=record.tld,
                    role=role.value,
                    strategy=name,
                    error=str(exc),
                )
        raise InterfaceLoadError(
            f"Unable to load {role.value} interface for {record.tld}: {'; '.join(failures) or 'no strategies'}",
            tld=record.tld,
            role=role.value,
        )

    def _load_file_abi(self, record: TLDRecord, role: ContractRole) -> Sequence[Dict[str, Any]]:
        if self._settings.abi_dir is None:
            raise FileNotFoundError("no ABI directory configured")
        folder = record.abi_folder or record.tld.lstrip(".")
        path = Path(self._settings.abi_dir) / folder / f"{role.value}.json"
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)

    @staticmethod
    def _load_default_abi(record: TLDRecord, role: ContractRole) -> Sequence[Dict[str, Any]]:
        return DEFAULT_ABIS[role.value]


__all__ = ["ContractHandle", "ContractResolver", "ContractRole", "InterfaceCache"]
