"""Error taxonomy shared by every HNS client component."""

from __future__ import annotations

from typing import Optional


class HNSError(RuntimeError):
    """Base class for client failures carrying a stable machine-readable code."""

    code = "hns_error"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class TLDNotFound(HNSError):
    """Raised when a TLD is not part of the configured directory."""

    code = "tld_not_found"

    def __init__(self, tld: str) -> None:
        super().__init__(f"TLD {tld!r} is not supported")
        self.tld = tld


class InterfaceLoadError(HNSError):
    """Raised when no address or ABI can be produced for a (TLD, role) pair."""

    code = "interface_load_error"

    def __init__(self, message: str, *, tld: Optional[str] = None, role: Optional[str] = None) -> None:
        super().__init__(message)
        self.tld = tld
        self.role = role


class ChainReadError(HNSError):
    """Raised when a read-only chain call fails after retries."""

    code = "chain_read_error"


class ChainWriteError(HNSError):
    """Raised when a transaction cannot be submitted or confirmed."""

    code = "chain_write_error"


class CommitmentNotFound(HNSError):
    code = "commitment_not_found"

    def __init__(self, fingerprint: str) -> None:
        super().__init__("Commitment not found on chain. Submit the commit transaction again.")
        self.fingerprint = fingerprint


class CommitmentExpired(HNSError):
    code = "commitment_expired"

    def __init__(self, fingerprint: str, *, age: Optional[int] = None) -> None:
        detail = f" (age {age}s)" if age is not None else ""
        super().__init__(f"Commitment expired{detail}. Start a new registration.")
        self.fingerprint = fingerprint
        self.age = age


class CommitmentTooNew(HNSError):
    code = "commitment_too_new"

    def __init__(self, remaining: int) -> None:
        super().__init__(f"Commitment is too new. Wait {remaining} more seconds before registering.")
        self.remaining = remaining


class InsufficientBalance(HNSError):
    """Raised by the payment guard when the wallet cannot cover the price."""

    code = "insufficient_balance"

    def __init__(self, *, shortfall: int, balance: int, required: int) -> None:
        super().__init__(
            f"Insufficient balance: need {required} wei, have {balance} wei (short by {shortfall} wei)"
        )
        self.shortfall = shortfall
        self.balance = balance
        self.required = required


class UserRejected(HNSError):
    code = "user_rejected"

    def __init__(self, message: str = "Transaction was rejected by the signer.") -> None:
        super().__init__(message)


class IndexerError(HNSError):
    """Raised when the GraphQL indexer cannot be reached or returns garbage."""

    code = "indexer_error"


class IndexingDegraded(IndexerError):
    """Raised when the indexer answers with GraphQL errors; the data may be incomplete."""

    code = "indexing_degraded"


class DomainNotFound(HNSError):
    code = "domain_not_found"


class InvalidSessionState(HNSError):
    """Raised when a registration operation is invoked from the wrong phase."""

    code = "invalid_session_state"


REVERT_CAUSES = ("insufficient_funds", "gas", "nonce", "revert", "unknown")

_CAUSE_MESSAGES = {
    "insufficient_funds": "Insufficient funds for the transaction. Add funds and try again.",
    "gas": "Gas estimation failed. The transaction may fail or the network is congested.",
    "nonce": "Nonce conflict. Reset the signer's pending transactions and try again.",
    "revert": "The contract rejected the transaction.",
    "unknown": "The transaction failed.",
}


class TransactionReverted(HNSError):
    """Raised when the chain or signer rejects a transaction."""

    code = "transaction_reverted"

    def __init__(self, reason: str, *, cause: str = "unknown") -> None:
        if cause not in REVERT_CAUSES:
            cause = "unknown"
        super().__init__(f"{_CAUSE_MESSAGES[cause]} ({reason})" if reason else _CAUSE_MESSAGES[cause])
        self.reason = reason
        self.cause = cause


class RegistrationError(HNSError):
    """Terminal failure of a registration session, wrapping the underlying cause."""

    code = "registration_failed"

    def __init__(self, cause: HNSError, *, phase: str) -> None:
        super().__init__(cause.message, code=cause.code)
        self.cause = cause
        self.phase = phase


def classify_chain_error(exc: BaseException) -> HNSError:
    """Translate an RPC or signer failure into the client error taxonomy."""

    if isinstance(exc, HNSError):
        return exc
    text = str(exc)
    lowered = text.lower()
    if "user rejected" in lowered or "user denied" in lowered:
        return UserRejected()
    if "commitmenttoonew" in lowered:
        return CommitmentTooNew(0)
    if "commitmenttooold" in lowered:
        return CommitmentExpired("")
    if "insufficient funds" in lowered or "insufficient balance" in lowered:
        return TransactionReverted(text, cause="insufficient_funds")
    if "nonce" in lowered:
        return TransactionReverted(text, cause="nonce")
    if "gas" in lowered:
        return TransactionReverted(text, cause="gas")
    if "revert" in lowered:
        return TransactionReverted(text, cause="revert")
    return TransactionReverted(text, cause="unknown")


__all__ = [
    "ChainReadError",
    "ChainWriteError",
    "CommitmentExpired",
    "CommitmentNotFound",
    "CommitmentTooNew",
    "DomainNotFound",
    "HNSError",
    "IndexerError",
    "IndexingDegraded",
    "InsufficientBalance",
    "InterfaceLoadError",
    "InvalidSessionState",
    "REVERT_CAUSES",
    "RegistrationError",
    "TLDNotFound",
    "TransactionReverted",
    "UserRejected",
    "classify_chain_error",
]
