"""Chain access: a capability protocol and its web3.py implementation."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Type, TypeVar

from eth_account import Account
from eth_utils import keccak, to_checksum_address
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from .config import HNSSettings, get_settings
from .contracts import ContractHandle
from .errors import (
    ChainReadError,
    ChainWriteError,
    HNSError,
    TransactionReverted,
    classify_chain_error,
)
from .logging_utils import log_event
from .metrics import CHAIN_RETRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransactionSigner(Protocol):
    """Wallet capability: an address and the ability to sign transactions."""

    @property
    def address(self) -> str:  # pragma: no cover - protocol definition
        ...

    def sign_transaction(self, tx: Dict[str, Any]) -> bytes:  # pragma: no cover - protocol definition
        ...


class LocalAccountSigner:
    """Signer holding a private key in memory via ``eth_account``."""

    def __init__(self, private_key: str) -> None:
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign_transaction(self, tx: Dict[str, Any]) -> bytes:
        signed = self._account.sign_transaction(tx)
        return bytes(signed.raw_transaction)


class ChainClient(Protocol):
    """Operations the registration and ownership components need from a chain."""

    @property
    def sender(self) -> Optional[str]:  # pragma: no cover - protocol definition
        ...

    async def call(self, handle: ContractHandle, fn_name: str, *args: Any) -> Any:  # pragma: no cover
        ...

    async def send(
        self,
        handle: ContractHandle,
        fn_name: str,
        *args: Any,
        value: int = 0,
        gas: Optional[int] = None,
    ) -> str:  # pragma: no cover
        ...

    async def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:  # pragma: no cover
        ...

    async def estimate_gas(
        self, handle: ContractHandle, fn_name: str, *args: Any, value: int = 0
    ) -> int:  # pragma: no cover
        ...

    async def get_balance(self, address: str) -> int:  # pragma: no cover
        ...

    async def block_number(self) -> int:  # pragma: no cover
        ...

    async def latest_timestamp(self) -> int:  # pragma: no cover
        ...

    async def get_events(
        self, handle: ContractHandle, event_name: str, *, from_block: int, to_block: int
    ) -> List[Dict[str, Any]]:  # pragma: no cover
        ...


@dataclass
class RetryPolicy:
    attempts: int = 3
    backoff: float = 1.0

    def delay(self, attempt: int) -> float:
        """Exponential backoff before retry number ``attempt`` (1-based)."""

        return self.backoff * (2 ** (attempt - 1))


_TRANSIENT = (asyncio.TimeoutError, OSError)


def _event_topic(abi: List[Dict[str, Any]], event_name: str) -> bytes:
    for entry in abi:
        if entry.get("type") == "event" and entry.get("name") == event_name:
            types = ",".join(item["type"] for item in entry.get("inputs", []))
            return keccak(text=f"{event_name}({types})")
    raise ChainReadError(f"Event {event_name} is not part of the contract interface")


class Web3ChainClient:
    """Blocking web3.py calls run in worker threads with timeouts and retries."""

    def __init__(
        self,
        settings: Optional[HNSSettings] = None,
        *,
        signer: Optional[TransactionSigner] = None,
        web3: Optional[Web3] = None,
        retry: Optional[RetryPolicy] = None,
        receipt_timeout: float = 180.0,
    ) -> None:
        self._settings = settings or get_settings()
        self._signer = signer
        self._w3 = web3 or Web3(
            Web3.HTTPProvider(self._settings.rpc_url, request_kwargs={"timeout": self._settings.rpc_timeout})
        )
        self._retry = retry or RetryPolicy(
            attempts=self._settings.rpc_retries, backoff=self._settings.rpc_backoff
        )
        self._timeout = self._settings.rpc_timeout
        self._receipt_timeout = receipt_timeout
        self._contracts: Dict[str, Any] = {}
        self._contracts_lock = threading.Lock()
        self._send_lock = asyncio.Lock()

    @property
    def web3(self) -> Web3:
        return self._w3

    @property
    def sender(self) -> Optional[str]:
        return self._signer.address if self._signer else None

    def _contract(self, handle: ContractHandle) -> Any:
        key = f"{handle.tld}:{handle.role.value}:{handle.address}"
        contract = self._contracts.get(key)
        if contract is None:
            contract = self._w3.eth.contract(address=handle.address, abi=handle.abi_list())
            with self._contracts_lock:
                self._contracts[key] = contract
        return contract

    async def _read(
        self,
        operation: str,
        fn: Callable[[], T],
        *,
        error_cls: Type[HNSError] = ChainReadError,
    ) -> T:
        attempt = 1
        while True:
            try:
                return await asyncio.wait_for(asyncio.to_thread(fn), timeout=self._timeout)
            except _TRANSIENT as exc:
                if attempt >= self._retry.attempts:
                    raise error_cls(f"{operation} failed after {attempt} attempts: {exc}") from exc
                CHAIN_RETRIES.labels(operation).inc()
                log_event(
                    logger,
                    logging.WARNING,
                    "chain.retry",
                    operation=operation,
                    attempt=attempt,
                    error=str(exc) or type(exc).__name__,
                )
                await asyncio.sleep(self._retry.delay(attempt))
                attempt += 1
            except ContractLogicError as exc:
                raise error_cls(f"{operation} reverted: {exc}") from exc
            except (Web3Exception, ValueError) as exc:
                raise error_cls(f"{operation} failed: {exc}") from exc

    async def call(self, handle: ContractHandle, fn_name: str, *args: Any) -> Any:
        func = getattr(self._contract(handle).functions, fn_name)(*args)
        return await self._read(f"{handle.role.value}.{fn_name}", func.call)

    async def estimate_gas(self, handle: ContractHandle, fn_name: str, *args: Any, value: int = 0) -> int:
        func = getattr(self._contract(handle).functions, fn_name)(*args)
        params: Dict[str, Any] = {"value": value}
        if self.sender:
            params["from"] = self.sender
        return int(await self._read(f"{handle.role.value}.{fn_name}.estimate", lambda: func.estimate_gas(params)))

    async def get_balance(self, address: str) -> int:
        checksum = to_checksum_address(address)
        return int(await self._read("eth_getBalance", lambda: self._w3.eth.get_balance(checksum)))

    async def block_number(self) -> int:
        return int(await self._read("eth_blockNumber", lambda: self._w3.eth.block_number))

    async def latest_timestamp(self) -> int:
        block = await self._read("eth_getBlockByNumber", lambda: self._w3.eth.get_block("latest"))
        return int(block["timestamp"])

    async def get_events(
        self, handle: ContractHandle, event_name: str, *, from_block: int, to_block: int
    ) -> List[Dict[str, Any]]:
        contract = self._contract(handle)
        topic = _event_topic(handle.abi_list(), event_name)
        params = {
            "address": handle.address,
            "fromBlock": max(from_block, 0),
            "toBlock": to_block,
            "topics": [Web3.to_hex(topic)],
        }
        logs = await self._read("eth_getLogs", lambda: self._w3.eth.get_logs(params))
        event = getattr(contract.events, event_name)()
        decoded: List[Dict[str, Any]] = []
        for log in logs:
            try:
                item = event.process_log(log)
            except Exception as exc:  # noqa: BLE001 - skip logs that do not match the ABI
                log_event(logger, logging.DEBUG, "chain.log_decode_failed", event=event_name, error=str(exc))
                continue
            decoded.append(
                {
                    "args": dict(item["args"]),
                    "blockNumber": int(item["blockNumber"]),
                    "transactionHash": Web3.to_hex(item["transactionHash"]),
                }
            )
        return decoded

    async def send(
        self,
        handle: ContractHandle,
        fn_name: str,
        *args: Any,
        value: int = 0,
        gas: Optional[int] = None,
    ) -> str:
        """Sign and broadcast a transaction; never retried once attempted."""

        if self._signer is None:
            raise ChainWriteError("No signer configured for transactions")
        signer = self._signer
        func = getattr(self._contract(handle).functions, fn_name)(*args)

        def _build_and_send() -> str:
            params: Dict[str, Any] = {
                "from": signer.address,
                "value": value,
                "nonce": self._w3.eth.get_transaction_count(signer.address, "pending"),
            }
            if gas is not None:
                params["gas"] = gas
            if self._settings.chain_id:
                params["chainId"] = self._settings.chain_id
            tx = func.build_transaction(params)
            raw = signer.sign_transaction(tx)
            return Web3.to_hex(self._w3.eth.send_raw_transaction(raw))

        operation = f"{handle.role.value}.{fn_name}"
        async with self._send_lock:
            try:
                tx_hash = await asyncio.wait_for(asyncio.to_thread(_build_and_send), timeout=self._timeout)
            except _TRANSIENT as exc:
                raise ChainWriteError(f"{operation} could not be submitted: {exc}") from exc
            except Exception as exc:  # noqa: BLE001 - mapped onto the error taxonomy
                raise classify_chain_error(exc) from exc
        log_event(logger, logging.INFO, "chain.tx_sent", operation=operation, tx_hash=tx_hash, value=value)
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        try:
            receipt = await asyncio.to_thread(
                self._w3.eth.wait_for_transaction_receipt, tx_hash, timeout=self._receipt_timeout
            )
        except TransactionNotFound as exc:
            raise ChainWriteError(f"Transaction {tx_hash} was not mined in time") from exc
        except Exception as exc:  # noqa: BLE001 - web3 raises TimeExhausted and transport errors
            raise ChainWriteError(f"Waiting for {tx_hash} failed: {exc}") from exc
        result = dict(receipt)
        if int(result.get("status", 1)) != 1:
            raise TransactionReverted(f"transaction {tx_hash} reverted", cause="revert")
        return result


__all__ = [
    "ChainClient",
    "LocalAccountSigner",
    "RetryPolicy",
    "TransactionSigner",
    "Web3ChainClient",
]
