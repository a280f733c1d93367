"""Built-in contract interfaces used when no TLD-specific ABI file is available."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

Param = Tuple[str, str]


def _params(items: Sequence[Param]) -> List[Dict[str, Any]]:
    return [{"name": name, "type": kind} for name, kind in items]


def _fn(
    name: str,
    inputs: Sequence[Param] = (),
    outputs: Sequence[Param] = (),
    mutability: str = "view",
) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": _params(inputs),
        "outputs": _params(outputs),
    }


_COMMITMENT_INPUTS: Tuple[Param, ...] = (
    ("name", "string"),
    ("owner", "address"),
    ("duration", "uint256"),
    ("secret", "bytes32"),
    ("resolver", "address"),
    ("data", "bytes[]"),
    ("reverseRecord", "bool"),
    ("ownerControlledFuses", "uint16"),
)

REGISTRAR_CONTROLLER_ABI: List[Dict[str, Any]] = [
    _fn("makeCommitment", _COMMITMENT_INPUTS, (("", "bytes32"),), "pure"),
    _fn("commit", (("commitment", "bytes32"),), (), "nonpayable"),
    _fn("commitments", (("", "bytes32"),), (("", "uint256"),)),
    _fn("minCommitmentAge", (), (("", "uint256"),)),
    _fn("maxCommitmentAge", (), (("", "uint256"),)),
    _fn("available", (("name", "string"),), (("", "bool"),)),
    _fn("register", _COMMITMENT_INPUTS, (), "payable"),
    _fn("renew", (("name", "string"), ("duration", "uint256")), (), "payable"),
    {
        "type": "function",
        "name": "rentPrice",
        "stateMutability": "view",
        "inputs": _params((("name", "string"), ("duration", "uint256"))),
        "outputs": [
            {
                "name": "price",
                "type": "tuple",
                "components": _params((("base", "uint256"), ("premium", "uint256"))),
            }
        ],
    },
    {
        "type": "event",
        "name": "NameRegistered",
        "anonymous": False,
        "inputs": [
            {"name": "name", "type": "string", "indexed": False},
            {"name": "label", "type": "bytes32", "indexed": True},
            {"name": "owner", "type": "address", "indexed": True},
            {"name": "baseCost", "type": "uint256", "indexed": False},
            {"name": "premium", "type": "uint256", "indexed": False},
            {"name": "expires", "type": "uint256", "indexed": False},
        ],
    },
]

NAME_WRAPPER_ABI: List[Dict[str, Any]] = [
    _fn("ownerOf", (("id", "uint256"),), (("owner", "address"),)),
    _fn("isWrapped", (("node", "bytes32"),), (("", "bool"),)),
    _fn(
        "setRecord",
        (("node", "bytes32"), ("owner", "address"), ("resolver", "address"), ("ttl", "uint64")),
        (),
        "nonpayable",
    ),
]

PUBLIC_RESOLVER_ABI: List[Dict[str, Any]] = [
    _fn("setAddr", (("node", "bytes32"), ("coinType", "uint256"), ("a", "bytes")), (), "nonpayable"),
    _fn("setText", (("node", "bytes32"), ("key", "string"), ("value", "string")), (), "nonpayable"),
    _fn("addr", (("node", "bytes32"),), (("", "address"),)),
    _fn("text", (("node", "bytes32"), ("key", "string")), (("", "string"),)),
]

BASE_REGISTRAR_ABI: List[Dict[str, Any]] = [
    _fn("ownerOf", (("tokenId", "uint256"),), (("", "address"),)),
    _fn("nameExpires", (("id", "uint256"),), (("", "uint256"),)),
    _fn(
        "transferFrom",
        (("from", "address"), ("to", "address"), ("tokenId", "uint256")),
        (),
        "nonpayable",
    ),
]

REGISTRY_ABI: List[Dict[str, Any]] = [
    _fn("owner", (("node", "bytes32"),), (("", "address"),)),
    _fn("resolver", (("node", "bytes32"),), (("", "address"),)),
    _fn("ttl", (("node", "bytes32"),), (("", "uint64"),)),
    _fn("setOwner", (("node", "bytes32"), ("owner", "address")), (), "nonpayable"),
]

DEFAULT_ABIS: Dict[str, List[Dict[str, Any]]] = {
    "RegistrarController": REGISTRAR_CONTROLLER_ABI,
    "NameWrapper": NAME_WRAPPER_ABI,
    "PublicResolver": PUBLIC_RESOLVER_ABI,
    "BaseRegistrar": BASE_REGISTRAR_ABI,
    "Registry": REGISTRY_ABI,
}


__all__ = [
    "BASE_REGISTRAR_ABI",
    "DEFAULT_ABIS",
    "NAME_WRAPPER_ABI",
    "PUBLIC_RESOLVER_ABI",
    "REGISTRAR_CONTROLLER_ABI",
    "REGISTRY_ABI",
]
