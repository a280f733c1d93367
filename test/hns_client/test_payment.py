import asyncio

import pytest

from hns_client.commitment import Commitment
from hns_client.contracts import ContractRole
from hns_client.errors import InsufficientBalance
from hns_client.payment import PaymentGuard, PricePolicy

ETHER = 10**18


def _commitment(owner: str, resolver_address: str) -> Commitment:
    return Commitment(
        label="myname",
        owner=owner,
        duration=31_536_000,
        secret_hash=b"\x01" * 32,
        resolver=resolver_address,
    )


def _authorize(guard: PaymentGuard, price: int, resolver, addrs):
    controller = resolver.resolve(".hii", ContractRole.REGISTRAR_CONTROLLER)

    async def runner():
        return await guard.authorize(
            price,
            _commitment(addrs.alice, addrs.hii_resolver),
            controller=controller,
            sender=addrs.alice,
        )

    return asyncio.run(runner())


def test_sufficient_balance_passes_first_attempt(resolver, chain, settings, addrs) -> None:
    chain.balances[addrs.alice] = ETHER
    auth = _authorize(PaymentGuard(chain, settings=settings), ETHER // 10, resolver, addrs)

    assert auth.attempts == 1
    assert not auth.balance_check_skipped
    assert auth.value == ETHER // 10
    assert auth.gas_limit == 240_000
    assert auth.gas_estimated


def test_buffer_shortfall_retries_without_balance_check(resolver, chain, settings, addrs) -> None:
    price = 5 * ETHER // 100
    chain.balances[addrs.alice] = price

    auth = _authorize(PaymentGuard(chain, settings=settings), price, resolver, addrs)

    assert auth.gas_buffer == 25 * ETHER // 10_000
    assert auth.total_cost == 525 * ETHER // 10_000
    assert auth.attempts == 2
    assert auth.balance_check_skipped
    assert auth.value == price


def test_balance_below_price_fails_with_shortfall(resolver, chain, settings, addrs) -> None:
    price = 5 * ETHER // 100
    chain.balances[addrs.alice] = price - 1

    with pytest.raises(InsufficientBalance) as excinfo:
        _authorize(PaymentGuard(chain, settings=settings), price, resolver, addrs)

    total = price + price // 20
    assert excinfo.value.shortfall == total - (price - 1)
    assert excinfo.value.required == total
    assert str(excinfo.value.shortfall) in str(excinfo.value)


def test_gas_estimate_failure_uses_default_limit(resolver, chain, settings, addrs) -> None:
    chain.balances[addrs.alice] = ETHER
    chain.gas_estimate = None

    auth = _authorize(PaymentGuard(chain, settings=settings), ETHER // 10, resolver, addrs)

    assert auth.gas_limit == settings.default_gas_limit
    assert not auth.gas_estimated


def test_price_policy_only_touches_configured_tlds() -> None:
    policy = PricePolicy({"hi": 3})

    assert policy.normalize(".hi", 10) == 30
    assert policy.normalize(".hii", 10) == 10
    with pytest.raises(ValueError):
        PricePolicy({".hi": 0})
