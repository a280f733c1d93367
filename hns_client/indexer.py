"""GraphQL client for the domain indexer."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from .config import HNSSettings, get_settings
from .errors import IndexerError, IndexingDegraded
from .logging_utils import log_event

logger = logging.getLogger(__name__)

_DOMAIN_FIELDS = """
    id
    name
    labelName
    labelhash
    owner { id }
    wrappedOwner { id }
    resolver { id }
    ttl
    createdAt
    expiryDate
"""

DOMAINS_BY_OWNER_QUERY = """
query DomainsByOwner($owner: String!, $first: Int!, $skip: Int!) {
  domains(
    where: { owner: $owner }
    first: $first
    skip: $skip
    orderBy: createdAt
    orderDirection: desc
  ) {%s  }
}
""" % _DOMAIN_FIELDS

# Wrapped names are registry-owned by the name wrapper; the holder is only
# visible through the wrapper token.
DOMAINS_BY_WRAPPED_OWNER_QUERY = """
query DomainsByWrappedOwner($owner: String!, $first: Int!, $skip: Int!) {
  domains(
    where: { wrappedOwner: $owner }
    first: $first
    skip: $skip
    orderBy: createdAt
    orderDirection: desc
  ) {%s  }
}
""" % _DOMAIN_FIELDS


class IndexedDomain(BaseModel):
    """Domain entry as reported by the indexer."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    label_name: Optional[str] = None
    labelhash: Optional[str] = None
    owner: Optional[str] = None
    wrapped_owner: Optional[str] = None
    resolver: Optional[str] = None
    ttl: Optional[int] = None
    created_at: Optional[int] = None
    expiry_date: Optional[int] = None

    @classmethod
    def from_graphql(cls, data: Dict[str, Any]) -> "IndexedDomain":
        def _nested_id(key: str) -> Optional[str]:
            value = data.get(key)
            if isinstance(value, dict):
                return value.get("id")
            return value if isinstance(value, str) else None

        def _int(key: str) -> Optional[int]:
            value = data.get(key)
            if value is None or value == "":
                return None
            return int(value)

        return cls(
            id=str(data.get("id") or ""),
            name=data.get("name"),
            label_name=data.get("labelName"),
            labelhash=data.get("labelhash"),
            owner=_nested_id("owner"),
            wrapped_owner=_nested_id("wrappedOwner"),
            resolver=_nested_id("resolver"),
            ttl=_int("ttl"),
            created_at=_int("createdAt"),
            expiry_date=_int("expiryDate"),
        )


class IndexerClient:
    """Fetches owned domains from the GraphQL indexer with paging and timeouts."""

    def __init__(
        self,
        url: str,
        *,
        settings: Optional[HNSSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self._url = url
        self._settings = settings or get_settings()
        self._transport = transport
        self._headers = headers or {}

    async def _query(self, client: httpx.AsyncClient, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await client.post(self._url, json={"query": query, "variables": variables})
        except httpx.HTTPError as exc:
            raise IndexerError(f"Indexer request failed: {str(exc) or type(exc).__name__}") from exc
        if response.status_code >= 400:
            raise IndexerError(f"Indexer responded with HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise IndexerError("Indexer returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise IndexerError("Indexer returned an unexpected payload")
        errors = payload.get("errors")
        if errors:
            messages = "; ".join(str(item.get("message", item)) if isinstance(item, dict) else str(item) for item in errors)
            raise IndexingDegraded(f"Indexer reported errors: {messages}")
        data = payload.get("data")
        if not isinstance(data, dict):
            raise IndexerError("Indexer response is missing data")
        return data

    async def _paged(self, client: httpx.AsyncClient, query: str, owner: str) -> List[IndexedDomain]:
        page_size = self._settings.indexer_page_size
        results: List[IndexedDomain] = []
        for page in range(self._settings.indexer_max_pages):
            data = await self._query(client, query, {"owner": owner, "first": page_size, "skip": page * page_size})
            entries = data.get("domains")
            if not isinstance(entries, list):
                raise IndexerError("Indexer response is missing the domains list")
            results.extend(IndexedDomain.from_graphql(item) for item in entries if isinstance(item, dict))
            if len(entries) < page_size:
                break
        else:
            log_event(
                logger,
                logging.WARNING,
                "indexer.page_limit_reached",
                owner=owner,
                pages=self._settings.indexer_max_pages,
            )
        return results

    async def domains_owned_by(self, address: str) -> List[IndexedDomain]:
        """Return indexed domains registry-owned by ``address`` or wrapped for it.

        Entries are deduplicated by id; registry-owned entries come first.
        """

        owner = address.lower()
        async with httpx.AsyncClient(
            timeout=self._settings.indexer_timeout,
            headers=self._headers,
            transport=self._transport,
        ) as client:
            owned = await self._paged(client, DOMAINS_BY_OWNER_QUERY, owner)
            wrapped = await self._paged(client, DOMAINS_BY_WRAPPED_OWNER_QUERY, owner)
        results: Dict[str, IndexedDomain] = {}
        for entry in owned + wrapped:
            results.setdefault(entry.id, entry)
        log_event(
            logger,
            logging.DEBUG,
            "indexer.domains_fetched",
            owner=owner,
            owned=len(owned),
            wrapped=len(wrapped),
        )
        return list(results.values())


__all__ = ["DOMAINS_BY_OWNER_QUERY", "DOMAINS_BY_WRAPPED_OWNER_QUERY", "IndexedDomain", "IndexerClient"]
