"""Commitment construction for the commit-reveal registration flow."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, keccak, to_bytes, to_checksum_address

from .chain import ChainClient
from .config import HNSSettings, get_settings
from .contracts import ContractResolver, ContractRole
from .logging_utils import log_event
from .names import label_warnings, namehash, node_hex, normalize_label

logger = logging.getLogger(__name__)

COIN_TYPE_ETH = 60

_SET_ADDR_SELECTOR = function_signature_to_4byte_selector("setAddr(bytes32,uint256,bytes)")
_SET_TEXT_SELECTOR = function_signature_to_4byte_selector("setText(bytes32,string,string)")


def secret_hash(secret: str) -> bytes:
    """``keccak256`` of the UTF-8 secret, matching ``abi.encodePacked(string)``."""

    return keccak(to_bytes(text=secret))


def encode_set_addr(node: bytes, owner: str, coin_type: int = COIN_TYPE_ETH) -> bytes:
    address_bytes = bytes.fromhex(to_checksum_address(owner)[2:])
    return _SET_ADDR_SELECTOR + encode(["bytes32", "uint256", "bytes"], [node, coin_type, address_bytes])


def encode_set_text(node: bytes, key: str, value: str) -> bytes:
    return _SET_TEXT_SELECTOR + encode(["bytes32", "string", "string"], [node, key, value])


@dataclass(frozen=True)
class Commitment:
    """The exact tuple that is fingerprinted at commit time and replayed at reveal."""

    label: str
    owner: str
    duration: int
    secret_hash: bytes
    resolver: str
    resolver_calls: Tuple[bytes, ...] = ()
    reverse_record: bool = True
    fuses: int = 0

    def as_args(self) -> Tuple[Any, ...]:
        return (
            self.label,
            self.owner,
            self.duration,
            self.secret_hash,
            self.resolver,
            list(self.resolver_calls),
            self.reverse_record,
            self.fuses,
        )


@dataclass(frozen=True)
class BuiltCommitment:
    commitment: Commitment
    fingerprint: bytes
    tld: str
    full_name: str
    node: bytes
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def fingerprint_hex(self) -> str:
        return node_hex(self.fingerprint)

    @property
    def resolver_calls(self) -> Tuple[bytes, ...]:
        return self.commitment.resolver_calls


class CommitmentBuilder:
    """Produces commitments and their registrar fingerprints."""

    def __init__(
        self,
        resolver: ContractResolver,
        chain: ChainClient,
        *,
        settings: Optional[HNSSettings] = None,
    ) -> None:
        self._resolver = resolver
        self._chain = chain
        self._settings = settings or get_settings()

    def resolver_calls(
        self,
        node: bytes,
        owner: str,
        *,
        tld: str,
        extra_records: Optional[Mapping[str, str]] = None,
        include_default_email: bool = False,
    ) -> Tuple[bytes, ...]:
        """Encode the resolver initialisation calls bundled into ``register``.

        The address record always comes first, text records follow in
        insertion order.
        """

        records: Dict[str, str] = dict(extra_records or {})
        if include_default_email and "email" not in records:
            default_email = self._resolver.directory.get(tld).default_email
            if default_email:
                records["email"] = default_email
        calls: List[bytes] = [encode_set_addr(node, owner)]
        for key, value in records.items():
            calls.append(encode_set_text(node, key, value))
        return tuple(calls)

    def prepare(
        self,
        label: str,
        owner: str,
        duration: int,
        secret: str,
        *,
        tld: str,
        extra_records: Optional[Mapping[str, str]] = None,
        include_default_email: bool = False,
        reverse_record: bool = True,
        fuses: int = 0,
    ) -> Tuple[Commitment, bytes, str, Tuple[str, ...]]:
        """Assemble the commitment tuple without touching the chain's state."""

        record = self._resolver.directory.get(tld)
        label = normalize_label(label)
        full_name = self._resolver.directory.full_name(label, record.tld)
        node = namehash(full_name)
        owner = to_checksum_address(owner)
        resolver = self._resolver.resolve(record.tld, ContractRole.PUBLIC_RESOLVER)
        calls = self.resolver_calls(
            node,
            owner,
            tld=record.tld,
            extra_records=extra_records,
            include_default_email=include_default_email,
        )
        commitment = Commitment(
            label=label,
            owner=owner,
            duration=int(duration),
            secret_hash=secret_hash(secret),
            resolver=resolver.address,
            resolver_calls=calls,
            reverse_record=reverse_record,
            fuses=fuses,
        )
        warnings = tuple(label_warnings(label, min_length=self._settings.min_label_length))
        return commitment, node, full_name, warnings

    async def build(
        self,
        label: str,
        owner: str,
        duration: int,
        secret: str,
        extra_records: Optional[Mapping[str, str]] = None,
        *,
        tld: str,
        include_default_email: bool = False,
        reverse_record: bool = True,
        fuses: int = 0,
    ) -> BuiltCommitment:
        commitment, node, full_name, warnings = self.prepare(
            label,
            owner,
            duration,
            secret,
            tld=tld,
            extra_records=extra_records,
            include_default_email=include_default_email,
            reverse_record=reverse_record,
            fuses=fuses,
        )
        controller = self._resolver.resolve(tld, ContractRole.REGISTRAR_CONTROLLER)
        raw = await self._chain.call(controller, "makeCommitment", *commitment.as_args())
        fingerprint = bytes.fromhex(raw[2:]) if isinstance(raw, str) else bytes(raw)
        log_event(
            logger,
            logging.INFO,
            "commitment.built",
            name=full_name,
            owner=commitment.owner,
            fingerprint=node_hex(fingerprint),
            warnings=list(warnings),
        )
        return BuiltCommitment(
            commitment=commitment,
            fingerprint=fingerprint,
            tld=controller.tld,
            full_name=full_name,
            node=node,
            warnings=warnings,
        )


__all__ = [
    "BuiltCommitment",
    "COIN_TYPE_ETH",
    "Commitment",
    "CommitmentBuilder",
    "encode_set_addr",
    "encode_set_text",
    "secret_hash",
]
