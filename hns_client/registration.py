"""Commit-reveal registration state machine."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, NoReturn, Optional, Tuple

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, ConfigDict

from .chain import ChainClient
from .commitment import BuiltCommitment, CommitmentBuilder
from .config import HNSSettings, get_settings
from .contracts import ContractHandle, ContractResolver, ContractRole
from .errors import (
    ChainReadError,
    CommitmentExpired,
    CommitmentNotFound,
    CommitmentTooNew,
    HNSError,
    InvalidSessionState,
    RegistrationError,
)
from .logging_utils import log_event
from .metrics import REGISTRATIONS
from .names import normalize_label
from .payment import Authorization, PaymentGuard, PricePolicy

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[Any]]


class RegistrationPhase(str, Enum):
    FORM = "Form"
    COMMITTING = "Committing"
    WAITING = "Waiting"
    READY_TO_REVEAL = "ReadyToReveal"
    REVEALING = "Revealing"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


_EDITABLE_FIELDS = {"label", "tld", "duration", "secret", "owner", "extra_records", "include_default_email"}


@dataclass
class RegistrationSession:
    """Mutable state owned by exactly one state machine."""

    label: str
    tld: str
    duration: int
    secret: str
    owner: Optional[str] = None
    extra_records: Dict[str, str] = field(default_factory=dict)
    include_default_email: bool = True
    phase: RegistrationPhase = RegistrationPhase.FORM
    built: Optional[BuiltCommitment] = None
    commit_tx_hash: Optional[str] = None
    reveal_tx_hash: Optional[str] = None
    min_commitment_age: Optional[int] = None
    max_commitment_age: Optional[int] = None
    ready_at: Optional[float] = None
    authorization: Optional[Authorization] = None
    error: Optional[HNSError] = None

    @property
    def fingerprint(self) -> Optional[bytes]:
        return self.built.fingerprint if self.built else None


class RegistrationSnapshot(BaseModel):
    """Read-only view of a session for presentation layers."""

    model_config = ConfigDict(frozen=True)

    label: str
    tld: str
    full_name: str
    owner: Optional[str] = None
    duration: int
    phase: RegistrationPhase
    fingerprint: Optional[str] = None
    commit_tx_hash: Optional[str] = None
    reveal_tx_hash: Optional[str] = None
    remaining_wait: float = 0.0
    warnings: List[str] = []
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class RegistrationStateMachine:
    """Drives one registration session from ``Form`` to ``Succeeded`` or ``Failed``.

    Timers are advisory; the reveal is always gated on the registrar's own
    ``commitments`` record and the latest block timestamp.
    """

    def __init__(
        self,
        resolver: ContractResolver,
        chain: ChainClient,
        *,
        settings: Optional[HNSSettings] = None,
        builder: Optional[CommitmentBuilder] = None,
        guard: Optional[PaymentGuard] = None,
        price_policy: Optional[PricePolicy] = None,
        sleep: Sleeper = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or get_settings()
        self._resolver = resolver
        self._chain = chain
        self._builder = builder or CommitmentBuilder(resolver, chain, settings=self._settings)
        self._guard = guard or PaymentGuard(chain, settings=self._settings)
        self._price_policy = price_policy or PricePolicy.from_settings(self._settings)
        self._sleep = sleep
        self._clock = clock
        self._session: Optional[RegistrationSession] = None
        self._timer: Optional[asyncio.Task[None]] = None

    @property
    def session(self) -> RegistrationSession:
        if self._session is None:
            raise InvalidSessionState("No registration session has been started")
        return self._session

    @property
    def phase(self) -> RegistrationPhase:
        return self.session.phase

    # -- session lifecycle -------------------------------------------------

    def start(
        self,
        label: str,
        *,
        tld: str,
        duration: Optional[int] = None,
        secret: Optional[str] = None,
        owner: Optional[str] = None,
        extra_records: Optional[Mapping[str, str]] = None,
        include_default_email: bool = True,
    ) -> RegistrationSnapshot:
        """Open a fresh session in ``Form``; nothing from a prior session carries over."""

        self.dispose()
        record = self._resolver.directory.get(tld)
        self._session = RegistrationSession(
            label=normalize_label(label),
            tld=record.tld,
            duration=int(duration if duration is not None else self._settings.default_duration),
            secret=secret or secrets.token_hex(32),
            owner=owner,
            extra_records=dict(extra_records or {}),
            include_default_email=include_default_email,
        )
        log_event(logger, logging.DEBUG, "registration.started", label=self._session.label, tld=record.tld)
        return self.snapshot()

    def restart(self, *, secret: Optional[str] = None) -> RegistrationSnapshot:
        """Begin again from ``Form`` with the same inputs and a fresh secret."""

        current = self.session
        return self.start(
            current.label,
            tld=current.tld,
            duration=current.duration,
            secret=secret,
            owner=current.owner,
            extra_records=current.extra_records,
            include_default_email=current.include_default_email,
        )

    def update(self, **changes: Any) -> RegistrationSnapshot:
        """Edit form inputs; a computed fingerprint is discarded."""

        session = self.session
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update {', '.join(sorted(unknown))}")
        if session.phase in (RegistrationPhase.COMMITTING, RegistrationPhase.REVEALING):
            raise InvalidSessionState(f"Cannot edit a session while {session.phase.value}")
        if "label" in changes:
            changes["label"] = normalize_label(changes["label"])
        if "tld" in changes:
            changes["tld"] = self._resolver.directory.get(changes["tld"]).tld
        if "duration" in changes:
            changes["duration"] = int(changes["duration"])
        if "extra_records" in changes:
            changes["extra_records"] = dict(changes["extra_records"] or {})
        if "include_default_email" in changes:
            changes["include_default_email"] = bool(changes["include_default_email"])
        if "secret" in changes and not changes["secret"]:
            changes["secret"] = secrets.token_hex(32)
        for key, value in changes.items():
            setattr(session, key, value)
        self._cancel_timer()
        session.phase = RegistrationPhase.FORM
        session.built = None
        session.commit_tx_hash = None
        session.reveal_tx_hash = None
        session.ready_at = None
        session.authorization = None
        session.error = None
        return self.snapshot()

    def dispose(self) -> None:
        """Stop local timers. Broadcast transactions are left to complete on chain."""

        self._cancel_timer()

    def remaining_wait(self) -> float:
        session = self._session
        if session is None or session.ready_at is None:
            return 0.0
        if session.phase not in (RegistrationPhase.WAITING, RegistrationPhase.READY_TO_REVEAL):
            return 0.0
        return max(0.0, session.ready_at - self._clock())

    def snapshot(self) -> RegistrationSnapshot:
        session = self.session
        return RegistrationSnapshot(
            label=session.label,
            tld=session.tld,
            full_name=f"{session.label}{session.tld}",
            owner=session.owner,
            duration=session.duration,
            phase=session.phase,
            fingerprint=session.built.fingerprint_hex if session.built else None,
            commit_tx_hash=session.commit_tx_hash,
            reveal_tx_hash=session.reveal_tx_hash,
            remaining_wait=self.remaining_wait(),
            warnings=list(session.built.warnings) if session.built else [],
            error_code=session.error.code if session.error else None,
            error_message=session.error.message if session.error else None,
        )

    # -- transitions -------------------------------------------------------

    async def commit(self) -> RegistrationSnapshot:
        """``Form -> Committing -> Waiting``."""

        session = self.session
        if session.phase is not RegistrationPhase.FORM:
            raise InvalidSessionState(f"Cannot commit from {session.phase.value}")
        if not session.label:
            raise InvalidSessionState("A label is required before committing")
        sender = self._chain.sender
        if not sender:
            raise InvalidSessionState("A signer must be connected before committing")
        owner = session.owner or sender
        if not is_address(owner):
            raise InvalidSessionState(f"Owner {owner!r} is not a valid address")
        session.owner = to_checksum_address(owner)

        session.phase = RegistrationPhase.COMMITTING
        try:
            built = await self._builder.build(
                session.label,
                session.owner,
                session.duration,
                session.secret,
                session.extra_records,
                tld=session.tld,
                include_default_email=session.include_default_email,
            )
            session.built = built
            controller = self._resolver.resolve(session.tld, ContractRole.REGISTRAR_CONTROLLER)
            tx_hash = await self._chain.send(
                controller, "commit", built.fingerprint, gas=self._settings.commit_gas_limit
            )
            session.commit_tx_hash = tx_hash
            await self._chain.wait_for_receipt(tx_hash)
            min_age, max_age = await self._commitment_ages(controller)
        except HNSError as exc:
            self._fail(exc)

        session.min_commitment_age = min_age
        session.max_commitment_age = max_age
        delay = float(min_age + self._settings.commit_safety_buffer)
        session.ready_at = self._clock() + delay
        session.phase = RegistrationPhase.WAITING
        self._timer = asyncio.create_task(self._countdown(delay))
        log_event(
            logger,
            logging.INFO,
            "registration.committed",
            name=built.full_name,
            tx_hash=tx_hash,
            fingerprint=built.fingerprint_hex,
            wait_seconds=delay,
        )
        return self.snapshot()

    async def wait_until_ready(self) -> RegistrationSnapshot:
        """Wait for the local countdown; the reveal still re-checks the chain."""

        session = self.session
        if session.phase not in (RegistrationPhase.WAITING, RegistrationPhase.READY_TO_REVEAL):
            raise InvalidSessionState(f"Nothing to wait for in {session.phase.value}")
        if self._timer is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer
        return self.snapshot()

    async def reveal(self) -> RegistrationSnapshot:
        """Verify the commitment window on chain, authorise payment and register."""

        session = self.session
        if session.phase not in (RegistrationPhase.WAITING, RegistrationPhase.READY_TO_REVEAL):
            raise InvalidSessionState(f"Cannot reveal from {session.phase.value}")
        built = session.built
        if built is None or not session.commit_tx_hash:
            raise InvalidSessionState("The commit transaction has not been confirmed")
        self._cancel_timer()
        sender = self._chain.sender
        if not sender:
            raise InvalidSessionState("A signer must be connected before revealing")

        try:
            controller = self._resolver.resolve(session.tld, ContractRole.REGISTRAR_CONTROLLER)
            await self._check_commitment_window(controller, built)
            price = await self.quote_price()
            authorization = await self._guard.authorize(
                price, built.commitment, controller=controller, sender=sender
            )
            session.authorization = authorization
            session.phase = RegistrationPhase.REVEALING
            tx_hash = await self._chain.send(
                controller,
                "register",
                *built.commitment.as_args(),
                value=authorization.value,
                gas=authorization.gas_limit,
            )
            session.reveal_tx_hash = tx_hash
            await self._chain.wait_for_receipt(tx_hash)
        except HNSError as exc:
            self._fail(exc)

        session.phase = RegistrationPhase.SUCCEEDED
        REGISTRATIONS.labels("succeeded").inc()
        log_event(
            logger,
            logging.INFO,
            "registration.succeeded",
            name=built.full_name,
            tx_hash=tx_hash,
            value=authorization.value,
            balance_check_skipped=authorization.balance_check_skipped,
        )
        return self.snapshot()

    async def run(self) -> RegistrationSnapshot:
        """Drive the current session through commit, wait and reveal."""

        if self.session.phase is RegistrationPhase.FORM:
            await self.commit()
        await self.wait_until_ready()
        return await self.reveal()

    async def register(
        self,
        label: str,
        *,
        tld: str,
        duration: Optional[int] = None,
        secret: Optional[str] = None,
        owner: Optional[str] = None,
        extra_records: Optional[Mapping[str, str]] = None,
        include_default_email: bool = True,
    ) -> RegistrationSnapshot:
        self.start(
            label,
            tld=tld,
            duration=duration,
            secret=secret,
            owner=owner,
            extra_records=extra_records,
            include_default_email=include_default_email,
        )
        return await self.run()

    async def quote_price(self) -> int:
        """Registrar price (base + premium) for the session, normalised per TLD."""

        session = self.session
        controller = self._resolver.resolve(session.tld, ContractRole.REGISTRAR_CONTROLLER)
        raw = await self._chain.call(controller, "rentPrice", session.label, session.duration)
        base, premium = (raw[0], raw[1]) if isinstance(raw, (tuple, list)) else (raw, 0)
        return self._price_policy.normalize(session.tld, int(base) + int(premium))

    # -- internals ---------------------------------------------------------

    async def _commitment_ages(self, controller: ContractHandle) -> Tuple[int, int]:
        try:
            min_age = int(await self._chain.call(controller, "minCommitmentAge"))
            max_age = int(await self._chain.call(controller, "maxCommitmentAge"))
        except ChainReadError as exc:
            log_event(
                logger,
                logging.WARNING,
                "registration.commitment_age_unavailable",
                error=str(exc),
                min_age=self._settings.default_min_commitment_age,
                max_age=self._settings.default_max_commitment_age,
            )
            return self._settings.default_min_commitment_age, self._settings.default_max_commitment_age
        return min_age, max_age

    async def _check_commitment_window(self, controller: ContractHandle, built: BuiltCommitment) -> None:
        session = self.session
        min_age = session.min_commitment_age
        if min_age is None:
            min_age = self._settings.default_min_commitment_age
        max_age = session.max_commitment_age
        if max_age is None:
            max_age = self._settings.default_max_commitment_age
        required = min_age + self._settings.commit_safety_buffer

        first_seen = int(await self._chain.call(controller, "commitments", built.fingerprint))
        if first_seen == 0:
            raise CommitmentNotFound(built.fingerprint_hex)

        age = await self._commitment_age(first_seen, built, max_age)
        if age < required:
            remaining = required - age
            log_event(
                logger,
                logging.INFO,
                "registration.waiting_for_maturity",
                name=built.full_name,
                remaining=remaining,
            )
            await self._sleep(remaining)
            age = await self._commitment_age(first_seen, built, max_age)
            if age < required:
                raise CommitmentTooNew(required - age)

    async def _commitment_age(self, first_seen: int, built: BuiltCommitment, max_age: int) -> int:
        now = await self._chain.latest_timestamp()
        age = now - first_seen
        if age > max_age:
            raise CommitmentExpired(built.fingerprint_hex, age=age)
        return age

    async def _countdown(self, delay: float) -> None:
        await self._sleep(delay)
        session = self._session
        if session is not None and session.phase is RegistrationPhase.WAITING:
            session.phase = RegistrationPhase.READY_TO_REVEAL

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None and not timer.done():
            timer.cancel()

    def _fail(self, exc: HNSError) -> NoReturn:
        session = self.session
        phase = session.phase
        self._cancel_timer()
        session.phase = RegistrationPhase.FAILED
        session.error = exc
        REGISTRATIONS.labels("failed").inc()
        log_event(
            logger,
            logging.WARNING,
            "registration.failed",
            label=session.label,
            tld=session.tld,
            phase=phase.value,
            code=exc.code,
            reason=exc.message,
        )
        raise RegistrationError(exc, phase=phase.value) from exc


__all__ = [
    "RegistrationPhase",
    "RegistrationSession",
    "RegistrationSnapshot",
    "RegistrationStateMachine",
]
