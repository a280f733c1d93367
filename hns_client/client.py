"""Wiring of the client components from settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .chain import ChainClient, LocalAccountSigner, TransactionSigner, Web3ChainClient
from .config import HNSSettings, get_settings
from .contracts import ContractResolver, InterfaceCache
from .indexer import IndexerClient
from .management import DomainManager
from .ownership import OwnershipCache, OwnershipResolver
from .payment import PricePolicy
from .registration import RegistrationStateMachine
from .tld import TLDDirectory


@dataclass
class HNSClient:
    settings: HNSSettings
    directory: TLDDirectory
    resolver: ContractResolver
    chain: ChainClient
    ownership: OwnershipResolver
    manager: DomainManager
    price_policy: PricePolicy

    @classmethod
    def from_settings(
        cls,
        settings: Optional[HNSSettings] = None,
        *,
        signer: Optional[TransactionSigner] = None,
        private_key: Optional[str] = None,
        chain: Optional[ChainClient] = None,
        directory: Optional[TLDDirectory] = None,
        indexer: Optional[IndexerClient] = None,
        interface_cache: Optional[InterfaceCache] = None,
        ownership_cache: Optional[OwnershipCache] = None,
    ) -> "HNSClient":
        settings = settings or get_settings()
        if signer is None and private_key:
            signer = LocalAccountSigner(private_key)
        directory = directory or TLDDirectory(settings)
        resolver = ContractResolver(directory, settings=settings, cache=interface_cache)
        chain = chain or Web3ChainClient(settings, signer=signer)
        if indexer is None and settings.indexer_url:
            indexer = IndexerClient(settings.indexer_url, settings=settings)
        price_policy = PricePolicy.from_settings(settings)
        return cls(
            settings=settings,
            directory=directory,
            resolver=resolver,
            chain=chain,
            ownership=OwnershipResolver(
                resolver, chain, indexer=indexer, settings=settings, cache=ownership_cache
            ),
            manager=DomainManager(resolver, chain, settings=settings, price_policy=price_policy),
            price_policy=price_policy,
        )

    def registration(self) -> RegistrationStateMachine:
        """A new state machine; each owns exactly one session at a time."""

        return RegistrationStateMachine(
            self.resolver,
            self.chain,
            settings=self.settings,
            price_policy=self.price_policy,
        )


__all__ = ["HNSClient"]
