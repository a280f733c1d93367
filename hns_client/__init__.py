"""Commit-reveal registration and ownership client for multi-TLD HNS registries."""

from .chain import ChainClient, LocalAccountSigner, RetryPolicy, TransactionSigner, Web3ChainClient
from .client import HNSClient
from .commitment import BuiltCommitment, Commitment, CommitmentBuilder
from .config import HNSSettings, get_settings
from .contracts import ContractHandle, ContractResolver, ContractRole, InterfaceCache
from .errors import (
    ChainReadError,
    ChainWriteError,
    CommitmentExpired,
    CommitmentNotFound,
    CommitmentTooNew,
    DomainNotFound,
    HNSError,
    IndexerError,
    IndexingDegraded,
    InsufficientBalance,
    InterfaceLoadError,
    InvalidSessionState,
    RegistrationError,
    TLDNotFound,
    TransactionReverted,
    UserRejected,
)
from .indexer import IndexedDomain, IndexerClient
from .management import DomainManager
from .ownership import DomainOwnershipRecord, OwnershipCache, OwnershipResolver, OwnershipResult
from .payment import Authorization, PaymentGuard, PricePolicy
from .registration import RegistrationPhase, RegistrationSnapshot, RegistrationStateMachine
from .tld import TLDDirectory, TLDRecord

__all__ = [
    "Authorization",
    "BuiltCommitment",
    "ChainClient",
    "ChainReadError",
    "ChainWriteError",
    "Commitment",
    "CommitmentBuilder",
    "CommitmentExpired",
    "CommitmentNotFound",
    "CommitmentTooNew",
    "ContractHandle",
    "ContractResolver",
    "ContractRole",
    "DomainManager",
    "DomainNotFound",
    "DomainOwnershipRecord",
    "HNSClient",
    "HNSError",
    "HNSSettings",
    "IndexedDomain",
    "IndexerClient",
    "IndexerError",
    "IndexingDegraded",
    "InsufficientBalance",
    "InterfaceCache",
    "InterfaceLoadError",
    "InvalidSessionState",
    "LocalAccountSigner",
    "OwnershipCache",
    "OwnershipResolver",
    "OwnershipResult",
    "PaymentGuard",
    "PricePolicy",
    "RegistrationError",
    "RegistrationPhase",
    "RegistrationSnapshot",
    "RegistrationStateMachine",
    "RetryPolicy",
    "TLDDirectory",
    "TLDNotFound",
    "TLDRecord",
    "TransactionReverted",
    "TransactionSigner",
    "UserRejected",
    "Web3ChainClient",
    "get_settings",
]
