"""Name hashing and label helpers."""

from __future__ import annotations

import re
from typing import List, Optional

from eth_utils import keccak, to_bytes

EMPTY_NODE = b"\x00" * 32

_LABEL_RE = re.compile(r"^[a-z0-9-]+$")
_UNKNOWN_LABEL_RE = re.compile(r"^\[[0-9a-fA-F]{64}\]$")


def normalize_label(label: str) -> str:
    """Lower-case and trim a label; a trailing TLD is not stripped here."""

    return (label or "").strip().lower()


def labelhash(label: str) -> bytes:
    return keccak(to_bytes(text=label))


def namehash(name: str) -> bytes:
    """ENS namehash for e.g. ``alice.hii``."""

    if not name:
        return EMPTY_NODE
    labels = [part for part in name.split(".") if part]
    node = EMPTY_NODE
    for label in reversed(labels):
        node = keccak(node + labelhash(label))
    return node


def node_hex(node: bytes) -> str:
    return "0x" + node.hex()


def node_to_token_id(node: bytes | str) -> int:
    """Token id used by the name wrapper for a wrapped name."""

    if isinstance(node, str):
        return int(node, 16)
    return int.from_bytes(node, "big")


def is_unresolved_label(label: Optional[str]) -> bool:
    """True for labels the indexer could not decode, e.g. ``[abcd...]``."""

    if not label:
        return True
    return bool(_UNKNOWN_LABEL_RE.match(label)) or label.startswith("[")


def label_warnings(label: str, *, min_length: int = 3) -> List[str]:
    """Describe problems with ``label`` without rejecting it.

    The registrar decides what is valid; these are surfaced to the caller
    so a UI can warn before the user pays for a commit.
    """

    warnings: List[str] = []
    if len(label) < min_length:
        warnings.append(f"label shorter than {min_length} characters")
    if "." in label:
        warnings.append("label contains a dot")
    elif label and not _LABEL_RE.match(label):
        warnings.append("label contains characters outside a-z, 0-9 and '-'")
    if label.startswith("-") or label.endswith("-"):
        warnings.append("label starts or ends with a hyphen")
    return warnings


__all__ = [
    "EMPTY_NODE",
    "is_unresolved_label",
    "label_warnings",
    "labelhash",
    "namehash",
    "node_hex",
    "node_to_token_id",
    "normalize_label",
]
