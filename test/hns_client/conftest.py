"""Shared fixtures: an in-memory chain, a two-TLD directory and settings."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

import pytest
from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from hns_client.config import HNSSettings
from hns_client.contracts import ContractHandle, ContractResolver, ContractRole, InterfaceCache
from hns_client.errors import ChainReadError
from hns_client.names import namehash, node_to_token_id
from hns_client.tld import TLDDirectory, TLDRecord

ZERO = "0x" + "0" * 40


def _address(byte: str) -> str:
    return to_checksum_address("0x" + byte * 20)


ADDRS = SimpleNamespace(
    alice=_address("aa"),
    bob=_address("bb"),
    carol=_address("cc"),
    hii_controller=_address("11"),
    hii_wrapper=_address("12"),
    hii_resolver=_address("13"),
    hi_controller=_address("21"),
    hi_wrapper=_address("22"),
    hi_resolver=_address("23"),
    registry=_address("31"),
    base_registrar=_address("32"),
)

_COMMITMENT_TYPES = ["string", "address", "uint256", "bytes32", "address", "bytes[]", "bool", "uint16"]


class FakeChain:
    """Chain double that mimics registrar, wrapper, registry and resolver contracts."""

    def __init__(self, *, sender: Optional[str] = ADDRS.alice, timestamp: int = 1_700_000_000) -> None:
        self._sender = sender
        self.timestamp = timestamp
        self.block = 50_000
        self.min_age = 60
        self.max_age = 86_400
        self.price: Dict[str, int] = {}
        self.default_price = 10**16
        self.balances: Dict[str, int] = {}
        self.commitments: Dict[bytes, int] = {}
        self.registry_owners: Dict[bytes, str] = {}
        self.registry_resolvers: Dict[bytes, str] = {}
        self.registry_ttls: Dict[bytes, int] = {}
        self.wrapped_owners: Dict[Tuple[str, int], str] = {}
        self.registrar_owners: Dict[int, str] = {}
        self.texts: Dict[Tuple[bytes, str], str] = {}
        self.registered: set = set()
        self.events: Dict[str, List[Dict[str, Any]]] = {}
        self.event_errors: Dict[str, Exception] = {}
        self.gas_estimate: Optional[int] = 200_000
        self.fail_calls: Dict[str, Exception] = {}
        self.sent: List[Dict[str, Any]] = []
        self.calls: List[Tuple[str, str]] = []

    @property
    def sender(self) -> Optional[str]:
        return self._sender

    def registered_event(self, label: str, owner: str, expires: int = 1_800_000_000) -> Dict[str, Any]:
        return {
            "args": {
                "name": label,
                "label": keccak(text=label),
                "owner": owner,
                "baseCost": self.default_price,
                "premium": 0,
                "expires": expires,
            },
            "blockNumber": self.block - 10,
            "transactionHash": "0x" + keccak(text=f"tx-{label}").hex(),
        }

    async def call(self, handle: ContractHandle, fn_name: str, *args: Any) -> Any:
        self.calls.append((handle.role.value, fn_name))
        if fn_name in self.fail_calls:
            raise self.fail_calls[fn_name]
        role = handle.role
        if role is ContractRole.REGISTRAR_CONTROLLER:
            if fn_name == "makeCommitment":
                return keccak(encode(_COMMITMENT_TYPES, list(args)))
            if fn_name == "commitments":
                return self.commitments.get(bytes(args[0]), 0)
            if fn_name == "minCommitmentAge":
                return self.min_age
            if fn_name == "maxCommitmentAge":
                return self.max_age
            if fn_name == "rentPrice":
                return (self.price.get(handle.tld, self.default_price), 0)
            if fn_name == "available":
                return args[0] not in self.registered
        if role is ContractRole.NAME_WRAPPER and fn_name == "ownerOf":
            return self.wrapped_owners.get((handle.address, args[0]), ZERO)
        if role is ContractRole.BASE_REGISTRAR and fn_name == "ownerOf":
            return self.registrar_owners.get(args[0], ZERO)
        if role is ContractRole.REGISTRY:
            if fn_name == "owner":
                return self.registry_owners.get(args[0], ZERO)
            if fn_name == "resolver":
                return self.registry_resolvers.get(args[0], ZERO)
            if fn_name == "ttl":
                return self.registry_ttls.get(args[0], 0)
        if role is ContractRole.PUBLIC_RESOLVER and fn_name == "text":
            return self.texts.get((args[0], args[1]), "")
        raise AssertionError(f"unexpected call {role.value}.{fn_name}")

    async def send(
        self,
        handle: ContractHandle,
        fn_name: str,
        *args: Any,
        value: int = 0,
        gas: Optional[int] = None,
    ) -> str:
        tx_hash = "0x" + keccak(text=f"{fn_name}-{len(self.sent)}").hex()
        self.sent.append(
            {"role": handle.role.value, "fn": fn_name, "args": args, "value": value, "gas": gas, "hash": tx_hash}
        )
        if fn_name == "commit":
            self.commitments[bytes(args[0])] = self.timestamp
        elif fn_name == "register":
            self.registered.add(args[0])
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        return {"transactionHash": tx_hash, "status": 1, "blockNumber": self.block}

    async def estimate_gas(self, handle: ContractHandle, fn_name: str, *args: Any, value: int = 0) -> int:
        if self.gas_estimate is None:
            raise ChainReadError("execution reverted during estimation")
        return self.gas_estimate

    async def get_balance(self, address: str) -> int:
        return self.balances.get(address, 0)

    async def block_number(self) -> int:
        return self.block

    async def latest_timestamp(self) -> int:
        return self.timestamp

    async def get_events(
        self, handle: ContractHandle, event_name: str, *, from_block: int, to_block: int
    ) -> List[Dict[str, Any]]:
        if handle.tld in self.event_errors:
            raise self.event_errors[handle.tld]
        return list(self.events.get(handle.tld, []))

    def own(self, full_name: str, owner: str) -> bytes:
        node = namehash(full_name)
        self.registry_owners[node] = owner
        return node

    def wrap(self, full_name: str, wrapper: str, owner: str) -> bytes:
        node = self.own(full_name, wrapper)
        self.wrapped_owners[(wrapper, node_to_token_id(node))] = owner
        return node


@pytest.fixture
def addrs() -> SimpleNamespace:
    return ADDRS


@pytest.fixture
def settings() -> HNSSettings:
    return HNSSettings(
        registry_address=ADDRS.registry,
        base_registrar_address=ADDRS.base_registrar,
        rpc_retries=2,
        rpc_backoff=0.0,
    )


@pytest.fixture
def tld_records() -> List[TLDRecord]:
    return [
        TLDRecord(
            tld=".hii",
            name="HII",
            registrar_controller=ADDRS.hii_controller,
            name_wrapper=ADDRS.hii_wrapper,
            public_resolver=ADDRS.hii_resolver,
            is_primary=True,
            default_email="contact@hii.network",
        ),
        TLDRecord(
            tld=".hi",
            name="HI",
            registrar_controller=ADDRS.hi_controller,
            name_wrapper=ADDRS.hi_wrapper,
            public_resolver=ADDRS.hi_resolver,
            default_email="contact@hi.network",
        ),
    ]


@pytest.fixture
def directory(settings: HNSSettings, tld_records: List[TLDRecord]) -> TLDDirectory:
    return TLDDirectory(settings, records=tld_records)


@pytest.fixture
def resolver(directory: TLDDirectory, settings: HNSSettings) -> ContractResolver:
    return ContractResolver(directory, settings=settings, cache=InterfaceCache())


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()
