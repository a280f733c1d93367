import asyncio

import pytest
from eth_abi import decode
from eth_utils import function_signature_to_4byte_selector, keccak

from hns_client.commitment import COIN_TYPE_ETH, CommitmentBuilder, secret_hash
from hns_client.config import ONE_YEAR_SECONDS, HNSSettings
from hns_client.contracts import ContractResolver
from hns_client.errors import InterfaceLoadError
from hns_client.names import namehash
from hns_client.tld import TLDDirectory, TLDRecord


def _build(builder: CommitmentBuilder, owner: str, secret: str = "s1", **kwargs):
    async def runner():
        return await builder.build("myname", owner, ONE_YEAR_SECONDS, secret, tld=".hii", **kwargs)

    return asyncio.run(runner())


def test_fingerprint_is_deterministic(resolver, chain, settings, addrs) -> None:
    builder = CommitmentBuilder(resolver, chain, settings=settings)

    first = _build(builder, addrs.alice)
    second = _build(builder, addrs.alice)
    other_secret = _build(builder, addrs.alice, secret="s2")

    assert len(first.fingerprint) == 32
    assert first.fingerprint == second.fingerprint
    assert first.fingerprint != other_secret.fingerprint
    assert first.full_name == "myname.hii"
    assert first.node == namehash("myname.hii")


def test_commitment_tuple_contents(resolver, chain, settings, addrs) -> None:
    built = _build(CommitmentBuilder(resolver, chain, settings=settings), addrs.alice.lower())
    commitment = built.commitment

    assert commitment.owner == addrs.alice
    assert commitment.resolver == addrs.hii_resolver
    assert commitment.secret_hash == keccak(b"s1") == secret_hash("s1")
    assert commitment.reverse_record is True
    assert commitment.fuses == 0
    assert commitment.as_args()[0] == "myname"
    assert commitment.as_args()[5] == list(commitment.resolver_calls)


def test_resolver_calls_start_with_address_record(resolver, chain, settings, addrs) -> None:
    built = _build(
        CommitmentBuilder(resolver, chain, settings=settings),
        addrs.alice,
        extra_records={"url": "https://alice.example", "avatar": "ipfs://x"},
    )
    calls = built.resolver_calls

    assert len(calls) == 3
    set_addr = function_signature_to_4byte_selector("setAddr(bytes32,uint256,bytes)")
    set_text = function_signature_to_4byte_selector("setText(bytes32,string,string)")
    assert calls[0][:4] == set_addr
    node, coin_type, raw = decode(["bytes32", "uint256", "bytes"], calls[0][4:])
    assert node == built.node
    assert coin_type == COIN_TYPE_ETH
    assert raw == bytes.fromhex(addrs.alice[2:])
    keys = [decode(["bytes32", "string", "string"], call[4:])[1] for call in calls[1:]]
    assert all(call[:4] == set_text for call in calls[1:])
    assert keys == ["url", "avatar"]


def test_default_email_is_added_on_request(resolver, chain, settings, addrs) -> None:
    built = _build(CommitmentBuilder(resolver, chain, settings=settings), addrs.alice, include_default_email=True)

    _, key, value = decode(["bytes32", "string", "string"], built.resolver_calls[1][4:])
    assert (key, value) == ("email", "contact@hii.network")


def test_short_labels_are_reported_not_rejected(resolver, chain, settings, addrs) -> None:
    builder = CommitmentBuilder(resolver, chain, settings=settings)

    async def runner():
        return await builder.build("ab", addrs.alice, ONE_YEAR_SECONDS, "s1", tld=".hii")

    built = asyncio.run(runner())
    assert built.warnings == ("label shorter than 3 characters",)
    assert len(built.fingerprint) == 32


def test_missing_resolver_address_raises(chain, settings, addrs) -> None:
    directory = TLDDirectory(settings, records=[TLDRecord(tld=".hii", registrar_controller=addrs.hii_controller)])
    builder = CommitmentBuilder(ContractResolver(directory, settings=settings), chain, settings=settings)

    with pytest.raises(InterfaceLoadError):
        _build(builder, addrs.alice)
    assert chain.calls == []
