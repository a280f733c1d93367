"""Balance and gas checks performed before a reveal transaction is submitted."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from .chain import ChainClient
from .commitment import Commitment
from .config import HNSSettings, get_settings
from .contracts import ContractHandle
from .errors import ChainReadError, ChainWriteError, InsufficientBalance
from .logging_utils import log_event
from .metrics import BALANCE_CHECK_RETRIES
from .tld import normalize_tld

logger = logging.getLogger(__name__)


class PricePolicy:
    """Per-TLD normalisation of registrar price quotes.

    Only TLDs with an explicitly configured multiplier are adjusted; every
    other TLD uses the registrar quote as-is.
    """

    def __init__(self, multipliers: Optional[Mapping[str, int]] = None) -> None:
        self._multipliers: Dict[str, int] = {}
        for tld, value in (multipliers or {}).items():
            if int(value) <= 0:
                raise ValueError(f"price multiplier for {tld} must be positive")
            self._multipliers[normalize_tld(tld)] = int(value)

    @classmethod
    def from_settings(cls, settings: Optional[HNSSettings] = None) -> "PricePolicy":
        settings = settings or get_settings()
        return cls(settings.price_multipliers)

    def multiplier(self, tld: str) -> int:
        return self._multipliers.get(normalize_tld(tld), 1)

    def normalize(self, tld: str, quote: int) -> int:
        return int(quote) * self.multiplier(tld)


@dataclass(frozen=True)
class Authorization:
    """Outcome of a successful payment check."""

    value: int
    gas_limit: int
    gas_estimated: bool
    balance: int
    gas_buffer: int
    total_cost: int
    balance_check_skipped: bool
    attempts: int


class PaymentGuard:
    """Decides whether a reveal may be submitted and with which value and gas."""

    def __init__(self, chain: ChainClient, *, settings: Optional[HNSSettings] = None) -> None:
        self._chain = chain
        self._settings = settings or get_settings()

    def gas_buffer(self, price_quote: int) -> int:
        return price_quote * self._settings.gas_buffer_pct // 100

    async def gas_limit(
        self, controller: ContractHandle, commitment: Commitment, *, value: int
    ) -> Tuple[int, bool]:
        """Estimate gas for the exact ``register`` call, falling back to the default limit."""

        try:
            estimate = await self._chain.estimate_gas(
                controller, "register", *commitment.as_args(), value=value
            )
        except (ChainReadError, ChainWriteError) as exc:
            log_event(
                logger,
                logging.WARNING,
                "payment.gas_estimate_failed",
                error=str(exc),
                fallback=self._settings.default_gas_limit,
            )
            return self._settings.default_gas_limit, False
        return estimate * self._settings.gas_headroom_pct // 100, True

    async def authorize(
        self,
        price_quote: int,
        commitment: Commitment,
        *,
        controller: ContractHandle,
        sender: str,
    ) -> Authorization:
        balance = await self._chain.get_balance(sender)
        buffer = self.gas_buffer(price_quote)
        total_cost = price_quote + buffer
        gas_limit, estimated = await self.gas_limit(controller, commitment, value=price_quote)

        attempts = 1
        skipped = False
        if balance < total_cost:
            if balance < price_quote:
                log_event(
                    logger,
                    logging.WARNING,
                    "payment.insufficient_balance",
                    balance=balance,
                    required=total_cost,
                    price=price_quote,
                )
                raise InsufficientBalance(shortfall=total_cost - balance, balance=balance, required=total_cost)
            # Second attempt: price alone.
            attempts = 2
            skipped = True
            BALANCE_CHECK_RETRIES.inc()
            log_event(
                logger,
                logging.WARNING,
                "payment.buffer_check_skipped",
                balance=balance,
                price=price_quote,
                total_cost=total_cost,
            )

        return Authorization(
            value=price_quote,
            gas_limit=gas_limit,
            gas_estimated=estimated,
            balance=balance,
            gas_buffer=buffer,
            total_cost=total_cost,
            balance_check_skipped=skipped,
            attempts=attempts,
        )


__all__ = ["Authorization", "PaymentGuard", "PricePolicy"]
