import asyncio

import pytest

from hns_client.commitment import encode_set_addr, encode_set_text
from hns_client.config import ONE_YEAR_SECONDS
from hns_client.errors import (
    CommitmentExpired,
    CommitmentNotFound,
    CommitmentTooNew,
    InsufficientBalance,
    InvalidSessionState,
    RegistrationError,
)
from hns_client.names import namehash
from hns_client.registration import RegistrationPhase, RegistrationStateMachine

ETHER = 10**18


def _machine(resolver, chain, settings, *, advance_chain: bool = True) -> RegistrationStateMachine:
    sleeps = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        if advance_chain:
            chain.timestamp += int(seconds)

    machine = RegistrationStateMachine(resolver, chain, settings=settings, sleep=fake_sleep)
    machine.sleeps = sleeps  # type: ignore[attr-defined]
    return machine


def _sent(chain, fn: str):
    return [tx for tx in chain.sent if tx["fn"] == fn]


def test_full_registration_flow(resolver, chain, settings, addrs) -> None:
    chain.balances[addrs.alice] = ETHER
    machine = _machine(resolver, chain, settings)

    async def runner():
        machine.start("MyName", tld=".hii", duration=ONE_YEAR_SECONDS, secret="s1")
        committed = await machine.commit()
        assert committed.phase is RegistrationPhase.WAITING
        ready = await machine.wait_until_ready()
        assert ready.phase is RegistrationPhase.READY_TO_REVEAL
        return await machine.reveal()

    snapshot = asyncio.run(runner())

    assert snapshot.phase is RegistrationPhase.SUCCEEDED
    assert snapshot.full_name == "myname.hii"
    assert snapshot.owner == addrs.alice
    assert machine.sleeps == [65.0]  # type: ignore[attr-defined]
    commit_tx = _sent(chain, "commit")[0]
    register_tx = _sent(chain, "register")[0]
    assert commit_tx["gas"] == settings.commit_gas_limit
    assert register_tx["args"] == machine.session.built.commitment.as_args()
    assert register_tx["value"] == chain.default_price
    assert register_tx["gas"] == 240_000
    assert snapshot.reveal_tx_hash == register_tx["hash"]


def test_reveal_before_min_age_never_submits(resolver, chain, settings, addrs) -> None:
    chain.balances[addrs.alice] = ETHER
    machine = _machine(resolver, chain, settings, advance_chain=False)

    async def runner():
        machine.start("myname", tld=".hii", duration=ONE_YEAR_SECONDS, secret="s1")
        await machine.commit()
        assert len(machine.session.fingerprint) == 32
        await machine.reveal()

    with pytest.raises(RegistrationError) as excinfo:
        asyncio.run(runner())

    assert isinstance(excinfo.value.cause, CommitmentTooNew)
    assert excinfo.value.cause.remaining == 65
    assert machine.phase is RegistrationPhase.FAILED
    assert _sent(chain, "register") == []


def test_reveal_waits_out_remaining_delta_once(resolver, chain, settings, addrs) -> None:
    chain.balances[addrs.alice] = ETHER
    machine = _machine(resolver, chain, settings)

    async def runner():
        machine.start("myname", tld=".hii", secret="s1")
        await machine.commit()
        chain.timestamp += 40
        return await machine.reveal()

    snapshot = asyncio.run(runner())

    assert snapshot.phase is RegistrationPhase.SUCCEEDED
    assert machine.sleeps == [25]  # type: ignore[attr-defined]


def test_expired_commitment_fails_without_reveal(resolver, chain, settings, addrs) -> None:
    chain.balances[addrs.alice] = ETHER
    machine = _machine(resolver, chain, settings)

    async def runner():
        machine.start("myname", tld=".hii", secret="s1")
        await machine.commit()
        chain.timestamp += chain.max_age + 1
        await machine.reveal()

    with pytest.raises(RegistrationError) as excinfo:
        asyncio.run(runner())

    assert isinstance(excinfo.value.cause, CommitmentExpired)
    assert machine.snapshot().error_code == "commitment_expired"
    assert _sent(chain, "register") == []


def test_missing_commitment_fails(resolver, chain, settings, addrs) -> None:
    machine = _machine(resolver, chain, settings)

    async def runner():
        machine.start("myname", tld=".hii", secret="s1")
        await machine.commit()
        chain.commitments.clear()
        await machine.reveal()

    with pytest.raises(RegistrationError) as excinfo:
        asyncio.run(runner())

    assert isinstance(excinfo.value.cause, CommitmentNotFound)
    assert excinfo.value.phase == "Waiting"


def test_insufficient_balance_is_terminal(resolver, chain, settings, addrs) -> None:
    chain.balances[addrs.alice] = chain.default_price // 2
    machine = _machine(resolver, chain, settings)

    async def runner():
        machine.start("myname", tld=".hii", secret="s1")
        await machine.run()

    with pytest.raises(RegistrationError) as excinfo:
        asyncio.run(runner())

    assert isinstance(excinfo.value.cause, InsufficientBalance)
    assert machine.phase is RegistrationPhase.FAILED
    assert "short by" in machine.snapshot().error_message


def test_editing_after_commit_discards_fingerprint(resolver, chain, settings, addrs) -> None:
    machine = _machine(resolver, chain, settings)

    async def runner():
        machine.start("myname", tld=".hii", secret="s1")
        await machine.commit()
        return machine.update(label="othername")

    snapshot = asyncio.run(runner())

    assert snapshot.phase is RegistrationPhase.FORM
    assert snapshot.fingerprint is None
    assert snapshot.commit_tx_hash is None
    assert machine.remaining_wait() == 0.0


def test_commit_uses_registrar_age_fallbacks(resolver, chain, settings, addrs) -> None:
    from hns_client.errors import ChainReadError

    chain.fail_calls["minCommitmentAge"] = ChainReadError("unavailable")
    machine = _machine(resolver, chain, settings)

    async def runner():
        machine.start("myname", tld=".hii", secret="s1")
        await machine.commit()

    asyncio.run(runner())
    assert machine.session.min_commitment_age == settings.default_min_commitment_age
    assert machine.session.max_commitment_age == settings.default_max_commitment_age


def test_sessions_get_fresh_secrets(resolver, chain, settings) -> None:
    machine = _machine(resolver, chain, settings)

    machine.start("myname", tld=".hii")
    first = machine.session.secret
    machine.restart()

    assert len(first) == 64
    assert machine.session.secret != first
    assert machine.phase is RegistrationPhase.FORM


def test_guards_on_phase_and_inputs(resolver, chain, settings, addrs) -> None:
    machine = _machine(resolver, chain, settings)
    with pytest.raises(InvalidSessionState):
        machine.snapshot()

    machine.start("myname", tld=".hii")
    with pytest.raises(InvalidSessionState):
        asyncio.run(machine.reveal())
    with pytest.raises(ValueError):
        machine.update(fingerprint="0x00")

    chain._sender = None
    with pytest.raises(InvalidSessionState):
        asyncio.run(machine.commit())
    assert machine.phase is RegistrationPhase.FORM


def test_dispose_cancels_countdown(resolver, chain, settings) -> None:
    async def blocking_sleep(_seconds: float) -> None:
        await asyncio.Event().wait()

    machine = RegistrationStateMachine(resolver, chain, settings=settings, sleep=blocking_sleep)

    async def runner():
        machine.start("myname", tld=".hii", secret="s1")
        await machine.commit()
        timer = machine._timer
        assert machine.remaining_wait() > 0
        machine.dispose()
        await asyncio.sleep(0)
        return timer

    timer = asyncio.run(runner())
    assert timer.cancelled()
    assert machine.phase is RegistrationPhase.WAITING


def test_registration_bundles_default_email_record(resolver, chain, settings, addrs) -> None:
    chain.balances[addrs.alice] = ETHER
    machine = _machine(resolver, chain, settings)

    asyncio.run(machine.register("alice", tld=".hi", secret="s1", extra_records={"url": "https://alice.example"}))

    node = namehash("alice.hi")
    calls = _sent(chain, "register")[0]["args"][5]
    assert calls == [
        encode_set_addr(node, addrs.alice),
        encode_set_text(node, "url", "https://alice.example"),
        encode_set_text(node, "email", "contact@hi.network"),
    ]


def test_default_email_can_be_turned_off(resolver, chain, settings, addrs) -> None:
    chain.balances[addrs.alice] = ETHER
    machine = _machine(resolver, chain, settings)

    async def runner():
        machine.start("alice", tld=".hii", secret="s1")
        machine.update(include_default_email=False)
        return await machine.run()

    asyncio.run(runner())

    calls = _sent(chain, "register")[0]["args"][5]
    assert calls == [encode_set_addr(namehash("alice.hii"), addrs.alice)]
