"""Prometheus counters exported by the HNS client."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, generate_latest

REGISTRY = CollectorRegistry()

REGISTRATIONS = Counter(
    "hns_registrations_total",
    "Registration sessions that reached a terminal phase",
    labelnames=("outcome",),
    registry=REGISTRY,
)
CHAIN_RETRIES = Counter(
    "hns_chain_retries_total",
    "Chain calls retried after a transient failure",
    labelnames=("operation",),
    registry=REGISTRY,
)
INDEXER_FALLBACKS = Counter(
    "hns_indexer_fallbacks_total",
    "Ownership lookups that fell back to the chain log scan",
    labelnames=("reason",),
    registry=REGISTRY,
)
BALANCE_CHECK_RETRIES = Counter(
    "hns_balance_check_retries_total",
    "Reveal authorisations that skipped the buffered balance check",
    registry=REGISTRY,
)


def render() -> bytes:
    return generate_latest(REGISTRY)


__all__ = [
    "BALANCE_CHECK_RETRIES",
    "CHAIN_RETRIES",
    "CONTENT_TYPE_LATEST",
    "INDEXER_FALLBACKS",
    "REGISTRATIONS",
    "REGISTRY",
    "render",
]
