"""Reconcile indexer-reported domain ownership with on-chain state."""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, ConfigDict

from .chain import ChainClient
from .config import HNSSettings, get_settings
from .contracts import ContractResolver, ContractRole
from .errors import ChainReadError, IndexerError, IndexingDegraded, InterfaceLoadError
from .indexer import IndexedDomain, IndexerClient
from .logging_utils import log_event
from .metrics import INDEXER_FALLBACKS
from .names import is_unresolved_label, namehash, node_hex, node_to_token_id
from .tld import TLDRecord

logger = logging.getLogger(__name__)


class OwnershipSource(str, Enum):
    INDEXER = "indexer"
    CHAIN = "chain"


class DomainOwnershipRecord(BaseModel):
    """A domain the queried address controls, directly or through the name wrapper."""

    model_config = ConfigDict(frozen=True)

    node: str
    full_name: str
    label_name: str
    tld: str
    direct_owner: str
    effective_owner: str
    is_wrapped: bool = False
    resolver_address: Optional[str] = None
    expiry: Optional[int] = None
    source: OwnershipSource = OwnershipSource.INDEXER


class OwnershipResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    records: List[DomainOwnershipRecord] = []
    indexer_degraded: bool = False
    indexer_error: Optional[str] = None
    chain_scan_used: bool = False
    chain_scan_error: Optional[str] = None
    lookup_error: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def complete(self) -> bool:
        return (
            not self.indexer_degraded
            and self.indexer_error is None
            and self.chain_scan_error is None
            and self.lookup_error is None
        )


class OwnershipCache:
    """Per-address results with a time-to-live; entries are replaced whole."""

    def __init__(self, ttl: float = 300.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, OwnershipResult]] = {}

    def get(self, address: str) -> Optional[OwnershipResult]:
        entry = self._entries.get(address.lower())
        if entry is None:
            return None
        stored_at, result = entry
        if self._clock() - stored_at >= self._ttl:
            return None
        return result

    def put(self, result: OwnershipResult) -> None:
        with self._lock:
            entries = dict(self._entries)
            entries[result.address.lower()] = (self._clock(), result)
            self._entries = entries

    def invalidate(self, address: str) -> None:
        with self._lock:
            entries = dict(self._entries)
            entries.pop(address.lower(), None)
            self._entries = entries

    def clear(self) -> None:
        with self._lock:
            self._entries = {}


_FILLABLE_FIELDS = ("resolver_address", "expiry")


def _preference(record: DomainOwnershipRecord) -> Tuple[bool, str]:
    return record.source is not OwnershipSource.INDEXER, record.model_dump_json()


def merge_records(*groups: List[DomainOwnershipRecord]) -> List[DomainOwnershipRecord]:
    """Deduplicate by node, sorted by name then node.

    Indexer records win over chain records for the same node; optional fields
    the winner lacks are filled from the other candidates. The result does not
    depend on the order of ``groups``.
    """

    candidates: Dict[str, List[DomainOwnershipRecord]] = {}
    for group in groups:
        for record in group:
            candidates.setdefault(record.node, []).append(record)

    merged: List[DomainOwnershipRecord] = []
    for records in candidates.values():
        ordered = sorted(records, key=_preference)
        winner = ordered[0]
        update: Dict[str, object] = {}
        for name in _FILLABLE_FIELDS:
            if getattr(winner, name) is None:
                value = next((getattr(other, name) for other in ordered[1:] if getattr(other, name) is not None), None)
                if value is not None:
                    update[name] = value
        merged.append(winner.model_copy(update=update) if update else winner)
    return sorted(merged, key=lambda item: (item.full_name, item.node))


class OwnershipResolver:
    """Answers "which domains does this address own?" across all configured TLDs."""

    def __init__(
        self,
        resolver: ContractResolver,
        chain: ChainClient,
        *,
        indexer: Optional[IndexerClient] = None,
        settings: Optional[HNSSettings] = None,
        cache: Optional[OwnershipCache] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._resolver = resolver
        self._directory = resolver.directory
        self._chain = chain
        self._indexer = indexer
        self._cache = cache if cache is not None else OwnershipCache(self._settings.ownership_cache_ttl)

    @property
    def cache(self) -> OwnershipCache:
        return self._cache

    async def domains_owned_by(
        self,
        address: str,
        *,
        expected_count: Optional[int] = None,
        refresh: bool = False,
    ) -> OwnershipResult:
        if not is_address(address):
            raise ValueError(f"{address!r} is not a valid address")
        address = to_checksum_address(address)
        if not refresh:
            cached = self._cache.get(address)
            if cached is not None:
                return cached

        indexed: List[DomainOwnershipRecord] = []
        lookup_errors: List[str] = []
        degraded = False
        indexer_error: Optional[str] = None
        fallback_reason: Optional[str] = None

        if self._indexer is None:
            fallback_reason = "unconfigured"
        else:
            try:
                entries = await self._indexer.domains_owned_by(address)
            except IndexingDegraded as exc:
                degraded = True
                indexer_error = exc.message
                fallback_reason = "degraded"
            except IndexerError as exc:
                indexer_error = exc.message
                fallback_reason = "error"
            else:
                indexed, lookup_errors = await self._classify_indexed(address, entries)
                threshold = expected_count if expected_count is not None else self._settings.expected_min_domains
                if threshold is not None and len(indexed) < threshold:
                    fallback_reason = "stale"

        scanned: List[DomainOwnershipRecord] = []
        scan_error: Optional[str] = None
        if fallback_reason is not None:
            INDEXER_FALLBACKS.labels(fallback_reason).inc()
            log_event(
                logger,
                logging.WARNING if fallback_reason != "unconfigured" else logging.INFO,
                "ownership.chain_scan",
                address=address,
                reason=fallback_reason,
                indexer_count=len(indexed),
                error=indexer_error,
            )
            scanned, scan_error = await self._scan_chain(address)

        result = OwnershipResult(
            address=address,
            records=merge_records(indexed, scanned),
            indexer_degraded=degraded,
            indexer_error=indexer_error,
            chain_scan_used=fallback_reason is not None,
            chain_scan_error=scan_error,
            lookup_error="; ".join(lookup_errors) or None,
        )
        if result.complete:
            self._cache.put(result)
        return result

    async def _classify_indexed(
        self, address: str, entries: List[IndexedDomain]
    ) -> Tuple[List[DomainOwnershipRecord], List[str]]:
        records: List[DomainOwnershipRecord] = []
        errors: List[str] = []
        for entry in entries:
            if not entry.name or not entry.owner:
                continue
            full_name = entry.name.lower()
            tld = self._directory.extract_tld(full_name)
            if tld is None:
                continue
            label = entry.label_name if entry.label_name is not None else full_name[: -len(tld)]
            if is_unresolved_label(label) or is_unresolved_label(full_name[: -len(tld)]):
                continue
            record = self._directory.get(tld)
            owner = to_checksum_address(entry.owner) if is_address(entry.owner) else None
            if owner is None:
                continue
            node = namehash(full_name)
            try:
                effective = await self._effective_owner(address, owner, node, record)
            except (ChainReadError, InterfaceLoadError) as exc:
                errors.append(f"{full_name}: {exc.message}")
                log_event(logger, logging.WARNING, "ownership.wrapper_check_failed", name=full_name, tld=tld, error=exc.message)
                continue
            if effective is None:
                continue
            records.append(
                DomainOwnershipRecord(
                    node=node_hex(node),
                    full_name=full_name,
                    label_name=full_name[: -len(tld)],
                    tld=tld,
                    direct_owner=owner,
                    effective_owner=effective,
                    is_wrapped=effective != owner,
                    resolver_address=entry.resolver,
                    expiry=entry.expiry_date,
                    source=OwnershipSource.INDEXER,
                )
            )
        return records, errors

    async def _effective_owner(
        self, address: str, owner: str, node: bytes, record: TLDRecord
    ) -> Optional[str]:
        """Return ``address`` when it controls ``node`` directly or via the TLD's wrapper.

        Raises ``ChainReadError`` or ``InterfaceLoadError`` when the wrapper
        cannot be asked, so callers can report the answer as incomplete.
        """

        if owner == address:
            return address
        if not record.name_wrapper or owner != record.name_wrapper:
            return None
        wrapper = self._resolver.resolve(record.tld, ContractRole.NAME_WRAPPER)
        wrapped_owner = await self._chain.call(wrapper, "ownerOf", node_to_token_id(node))
        if wrapped_owner and is_address(wrapped_owner) and to_checksum_address(wrapped_owner) == address:
            return address
        return None

    async def _scan_chain(self, address: str) -> Tuple[List[DomainOwnershipRecord], Optional[str]]:
        errors: List[str] = []
        found: Dict[str, DomainOwnershipRecord] = {}
        try:
            latest = await self._chain.block_number()
        except ChainReadError as exc:
            log_event(logger, logging.ERROR, "ownership.chain_scan_failed", address=address, error=exc.message)
            return [], exc.message
        from_block = max(0, latest - self._settings.log_scan_blocks)

        for record in self._directory.records():
            try:
                controller = self._resolver.resolve(record.tld, ContractRole.REGISTRAR_CONTROLLER)
                registry = self._resolver.resolve(record.tld, ContractRole.REGISTRY)
                events = await self._chain.get_events(
                    controller, "NameRegistered", from_block=from_block, to_block=latest
                )
            except (ChainReadError, InterfaceLoadError) as exc:
                errors.append(f"{record.tld}: {exc.message}")
                log_event(
                    logger,
                    logging.WARNING,
                    "ownership.tld_scan_failed",
                    tld=record.tld,
                    error=exc.message,
                )
                continue

            for event in events:
                args = event.get("args") or {}
                label = str(args.get("name") or "").lower()
                if not label or is_unresolved_label(label):
                    continue
                full_name = f"{label}{record.tld}"
                node = namehash(full_name)
                key = node_hex(node)
                if key in found:
                    continue
                try:
                    owner = await self._chain.call(registry, "owner", node)
                    if not owner or not is_address(owner):
                        continue
                    owner = to_checksum_address(owner)
                    effective = await self._effective_owner(address, owner, node, record)
                except (ChainReadError, InterfaceLoadError) as exc:
                    errors.append(f"{full_name}: {exc.message}")
                    log_event(logger, logging.WARNING, "ownership.owner_lookup_failed", name=full_name, error=exc.message)
                    continue
                if effective is None:
                    continue
                expires = args.get("expires")
                found[key] = DomainOwnershipRecord(
                    node=key,
                    full_name=full_name,
                    label_name=label,
                    tld=record.tld,
                    direct_owner=owner,
                    effective_owner=effective,
                    is_wrapped=effective != owner,
                    expiry=int(expires) if expires is not None else None,
                    source=OwnershipSource.CHAIN,
                )

        log_event(logger, logging.INFO, "ownership.chain_scan_complete", address=address, found=len(found))
        return list(found.values()), "; ".join(errors) or None


__all__ = [
    "DomainOwnershipRecord",
    "OwnershipCache",
    "OwnershipResolver",
    "OwnershipResult",
    "OwnershipSource",
    "merge_records",
]
