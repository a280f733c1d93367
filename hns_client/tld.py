"""TLD directory backed by a local document with optional remote refresh."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import httpx
from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import HNSSettings, get_settings, load_mapping
from .errors import TLDNotFound
from .logging_utils import log_event

logger = logging.getLogger(__name__)


def normalize_tld(tld: str) -> str:
    text = (tld or "").strip().lower()
    if text and not text.startswith("."):
        text = f".{text}"
    return text


class TLDRecord(BaseModel):
    """Contract set and presentation metadata for one TLD."""

    model_config = ConfigDict(frozen=True)

    tld: str
    name: str = ""
    description: str = ""
    registrar_controller: Optional[str] = None
    name_wrapper: Optional[str] = None
    public_resolver: Optional[str] = None
    is_primary: bool = False
    default_email: Optional[str] = None
    abi_folder: Optional[str] = Field(default=None, description="Directory holding TLD-specific ABIs.")

    @field_validator("tld")
    @classmethod
    def _check_tld(cls, value: str) -> str:
        normalized = normalize_tld(value)
        if len(normalized) < 2:
            raise ValueError("tld must not be empty")
        return normalized

    @field_validator("registrar_controller", "name_wrapper", "public_resolver", mode="before")
    @classmethod
    def _check_address(cls, value: Any) -> Optional[str]:
        # A blank or malformed address only disables the affected role.
        if not value or not isinstance(value, str) or not is_address(value):
            return None
        return to_checksum_address(value)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "TLDRecord":
        contracts = data.get("contracts") or {}

        def _resolve(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in data:
                    return data[key]
                if key in contracts:
                    return contracts[key]
            return default

        return cls(
            tld=str(_resolve("tld", default="")),
            name=str(_resolve("name", default="")),
            description=str(_resolve("description", default="")),
            registrar_controller=_resolve("registrar_controller", "registrarController"),
            name_wrapper=_resolve("name_wrapper", "nameWrapper"),
            public_resolver=_resolve("public_resolver", "publicResolver"),
            is_primary=bool(_resolve("is_primary", "isPrimary", default=False)),
            default_email=_resolve("default_email", "defaultEmail"),
            abi_folder=_resolve("abi_folder", "abiFolder"),
        )


def parse_document(data: Dict[str, Any], *, supported: Iterable[str] = ()) -> Tuple[TLDRecord, ...]:
    """Validate a ``{"tlds": [...]}`` document and return its records."""

    entries = data.get("tlds") if isinstance(data, dict) else None
    if not isinstance(entries, list) or not entries:
        raise ValueError("TLD document must contain a non-empty 'tlds' list")
    allowed = {normalize_tld(item) for item in supported}
    records: List[TLDRecord] = []
    seen = set()
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValueError("TLD entries must be mappings")
        record = TLDRecord.from_mapping(entry)
        if allowed and record.tld not in allowed:
            continue
        if record.tld in seen:
            raise ValueError(f"duplicate TLD {record.tld}")
        seen.add(record.tld)
        records.append(record)
    if not records:
        raise ValueError("TLD document does not contain any supported TLD")
    return tuple(records)


class TLDDirectory:
    """Enumerates supported TLDs and maps names to their TLD record."""

    def __init__(
        self,
        settings: Optional[HNSSettings] = None,
        *,
        records: Optional[Iterable[TLDRecord]] = None,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        self._clock = clock
        self._lock = threading.Lock()
        self._static = records is not None
        self._records: Tuple[TLDRecord, ...] = tuple(records or ())
        self._loaded_at: Optional[float] = clock() if self._static else None
        self._source = "static" if self._static else None

    @property
    def source(self) -> Optional[str]:
        return self._source

    def records(self) -> Tuple[TLDRecord, ...]:
        self._ensure_loaded()
        return self._records

    def tlds(self) -> List[str]:
        return [record.tld for record in self.records()]

    def get(self, tld: str) -> TLDRecord:
        wanted = normalize_tld(tld)
        for record in self.records():
            if record.tld == wanted:
                return record
        raise TLDNotFound(tld)

    def is_supported(self, tld: str) -> bool:
        try:
            self.get(tld)
        except TLDNotFound:
            return False
        return True

    def primary(self) -> TLDRecord:
        records = self.records()
        for record in records:
            if record.is_primary:
                return record
        return records[0]

    def extract_tld(self, name: str) -> Optional[str]:
        """Return the longest configured TLD that ``name`` ends with."""

        lowered = (name or "").strip().lower()
        matches = [record.tld for record in self.records() if lowered.endswith(record.tld)]
        if not matches:
            return None
        return max(matches, key=len)

    def split_name(self, name: str) -> Tuple[str, str]:
        """Split ``alice.hii`` into ``("alice", ".hii")``."""

        tld = self.extract_tld(name)
        if tld is None:
            raise TLDNotFound(name)
        lowered = name.strip().lower()
        return lowered[: -len(tld)], tld

    def full_name(self, label: str, tld: str) -> str:
        return f"{label}{self.get(tld).tld}"

    def invalidate(self) -> None:
        """Force the next lookup to reload the document."""

        if self._static:
            return
        with self._lock:
            self._loaded_at = None

    def _ensure_loaded(self) -> None:
        if self._static:
            return
        with self._lock:
            now = self._clock()
            if self._loaded_at is not None and now - self._loaded_at < self._settings.tld_cache_ttl:
                return
            records, source = self._load()
            self._records = records
            self._source = source
            self._loaded_at = now

    def _load(self) -> Tuple[Tuple[TLDRecord, ...], str]:
        settings = self._settings
        if settings.tld_source == "remote" and settings.tld_config_url:
            try:
                return self._load_remote(settings.tld_config_url), "remote"
            except (httpx.HTTPError, ValueError, ValidationError) as exc:
                log_event(
                    logger,
                    logging.WARNING,
                    "tld.remote_failed",
                    url=settings.tld_config_url,
                    error=str(exc),
                )
        return self._load_local(settings.tld_config_path), "local"

    def _load_remote(self, url: str) -> Tuple[TLDRecord, ...]:
        with httpx.Client(timeout=self._settings.indexer_timeout, transport=self._transport) as client:
            response = client.get(url, headers={"Accept": "application/json"})
            response.raise_for_status()
            payload = response.json()
        records = parse_document(payload, supported=self._settings.supported_tlds)
        log_event(logger, logging.INFO, "tld.remote_loaded", url=url, count=len(records))
        return records

    def _load_local(self, path: Path) -> Tuple[TLDRecord, ...]:
        records = parse_document(load_mapping(path), supported=self._settings.supported_tlds)
        log_event(logger, logging.DEBUG, "tld.local_loaded", path=str(path), count=len(records))
        return records


__all__ = ["TLDDirectory", "TLDRecord", "normalize_tld", "parse_document"]
