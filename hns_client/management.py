"""Post-registration domain management: availability, pricing, renewal and transfer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from eth_utils import is_address, to_checksum_address

from .chain import ChainClient
from .config import HNSSettings, get_settings
from .contracts import ContractResolver, ContractRole
from .errors import ChainWriteError, DomainNotFound
from .logging_utils import log_event
from .names import labelhash, namehash, normalize_label
from .payment import PricePolicy

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


@dataclass(frozen=True)
class PriceQuote:
    base: int
    premium: int
    total: int


@dataclass(frozen=True)
class TransferResult:
    tx_hash: str
    method: str


def _is_zero(address: Optional[str]) -> bool:
    return not address or int(address, 16) == 0


class DomainManager:
    """Operations on existing names that do not need the commit-reveal flow."""

    def __init__(
        self,
        resolver: ContractResolver,
        chain: ChainClient,
        *,
        settings: Optional[HNSSettings] = None,
        price_policy: Optional[PricePolicy] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._resolver = resolver
        self._chain = chain
        self._price_policy = price_policy or PricePolicy.from_settings(self._settings)

    async def available(self, label: str, tld: str) -> bool:
        controller = self._resolver.resolve(tld, ContractRole.REGISTRAR_CONTROLLER)
        return bool(await self._chain.call(controller, "available", normalize_label(label)))

    async def rent_price(self, label: str, duration: int, tld: str) -> PriceQuote:
        controller = self._resolver.resolve(tld, ContractRole.REGISTRAR_CONTROLLER)
        raw = await self._chain.call(controller, "rentPrice", normalize_label(label), int(duration))
        base, premium = (int(raw[0]), int(raw[1])) if isinstance(raw, (tuple, list)) else (int(raw), 0)
        base = self._price_policy.normalize(controller.tld, base)
        premium = self._price_policy.normalize(controller.tld, premium)
        return PriceQuote(base=base, premium=premium, total=base + premium)

    async def renew(self, label: str, duration: int, tld: str) -> str:
        """Extend a registration, paying the quoted price."""

        label = normalize_label(label)
        controller = self._resolver.resolve(tld, ContractRole.REGISTRAR_CONTROLLER)
        quote = await self.rent_price(label, duration, tld)
        tx_hash = await self._chain.send(controller, "renew", label, int(duration), value=quote.total)
        await self._chain.wait_for_receipt(tx_hash)
        log_event(
            logger,
            logging.INFO,
            "management.renewed",
            name=f"{label}{controller.tld}",
            duration=duration,
            value=quote.total,
            tx_hash=tx_hash,
        )
        return tx_hash

    async def transfer(self, full_name: str, new_owner: str) -> TransferResult:
        """Move a name to ``new_owner``.

        Unwrapped names go through the registry. Wrapped names are moved
        with the base registrar when the sender still holds the registrar
        token, otherwise through the name wrapper keeping resolver and TTL.
        """

        if not is_address(new_owner):
            raise ValueError(f"{new_owner!r} is not a valid address")
        new_owner = to_checksum_address(new_owner)
        sender = self._chain.sender
        if not sender:
            raise ChainWriteError("No signer configured for transactions")

        label, tld = self._resolver.directory.split_name(full_name)
        record = self._resolver.directory.get(tld)
        node = namehash(self._resolver.directory.full_name(label, record.tld))
        registry = self._resolver.resolve(record.tld, ContractRole.REGISTRY)
        current_owner = await self._chain.call(registry, "owner", node)
        if _is_zero(current_owner):
            raise DomainNotFound(f"{full_name} is not registered")
        current_owner = to_checksum_address(current_owner)

        if record.name_wrapper and current_owner == record.name_wrapper:
            base_registrar = self._resolver.resolve(record.tld, ContractRole.BASE_REGISTRAR)
            token_id = int.from_bytes(labelhash(label), "big")
            registrar_owner = await self._chain.call(base_registrar, "ownerOf", token_id)
            if registrar_owner and to_checksum_address(registrar_owner) == sender:
                method = "BaseRegistrar.transferFrom"
                tx_hash = await self._chain.send(base_registrar, "transferFrom", sender, new_owner, token_id)
            else:
                resolver_address = await self._chain.call(registry, "resolver", node)
                ttl = await self._chain.call(registry, "ttl", node)
                wrapper = self._resolver.resolve(record.tld, ContractRole.NAME_WRAPPER)
                method = "NameWrapper.setRecord"
                tx_hash = await self._chain.send(
                    wrapper,
                    "setRecord",
                    node,
                    new_owner,
                    resolver_address or ZERO_ADDRESS,
                    int(ttl or 0),
                )
        else:
            method = "Registry.setOwner"
            tx_hash = await self._chain.send(registry, "setOwner", node, new_owner)

        await self._chain.wait_for_receipt(tx_hash)
        log_event(
            logger,
            logging.INFO,
            "management.transferred",
            name=full_name,
            new_owner=new_owner,
            method=method,
            tx_hash=tx_hash,
        )
        return TransferResult(tx_hash=tx_hash, method=method)

    async def text_record(self, full_name: str, key: str) -> str:
        label, tld = self._resolver.directory.split_name(full_name)
        node = namehash(self._resolver.directory.full_name(label, tld))
        registry = self._resolver.resolve(tld, ContractRole.REGISTRY)
        resolver_address = await self._chain.call(registry, "resolver", node)
        if _is_zero(resolver_address):
            raise DomainNotFound(f"{full_name} has no resolver")
        handle = self._resolver.resolve(tld, ContractRole.PUBLIC_RESOLVER)
        if to_checksum_address(resolver_address) != handle.address:
            log_event(
                logger,
                logging.DEBUG,
                "management.custom_resolver",
                name=full_name,
                resolver=resolver_address,
            )
            handle = replace(handle, address=to_checksum_address(resolver_address))
        return str(await self._chain.call(handle, "text", node, key))


__all__ = ["DomainManager", "PriceQuote", "TransferResult"]
