import json

import httpx
import pytest
from eth_utils import to_checksum_address

from hns_client.config import HNSSettings
from hns_client.errors import TLDNotFound
from hns_client.tld import TLDDirectory, TLDRecord, parse_document

REMOTE_URL = "https://cdn.test/tlds.json"


def _remote_document() -> dict:
    return {
        "tlds": [
            {
                "tld": ".hii",
                "isPrimary": True,
                "contracts": {
                    "registrarController": "0x" + "44" * 20,
                    "nameWrapper": "0x" + "45" * 20,
                    "publicResolver": "0x" + "46" * 20,
                },
            }
        ]
    }


def test_bundled_document_loads() -> None:
    directory = TLDDirectory(HNSSettings())

    assert directory.tlds() == [".hii", ".hi"]
    assert directory.primary().tld == ".hii"
    assert directory.source == "local"
    hi = directory.get("hi")
    assert hi.registrar_controller is None
    assert hi.default_email == "contact@hi.network"


def test_unknown_tld_is_not_defaulted(directory: TLDDirectory) -> None:
    with pytest.raises(TLDNotFound):
        directory.get(".eth")
    assert not directory.is_supported(".eth")


def test_split_name_prefers_longest_suffix() -> None:
    directory = TLDDirectory(
        HNSSettings(),
        records=[TLDRecord(tld=".uk"), TLDRecord(tld=".co.uk")],
    )

    assert directory.split_name("shop.co.uk") == ("shop", ".co.uk")
    assert directory.split_name("Shop.UK") == ("shop", ".uk")
    with pytest.raises(TLDNotFound):
        directory.split_name("shop.example")


def test_full_name_normalises_the_tld(directory: TLDDirectory) -> None:
    assert directory.full_name("alice", "HI") == "alice.hi"
    assert directory.full_name("alice", ".hii") == "alice.hii"
    with pytest.raises(TLDNotFound):
        directory.full_name("alice", "eth")


def test_addresses_are_checksummed_and_invalid_ones_dropped() -> None:
    record = TLDRecord.from_mapping(
        {
            "tld": "HII",
            "contracts": {"registrarController": "0x" + "ab" * 20, "nameWrapper": "not-an-address"},
        }
    )

    assert record.tld == ".hii"
    assert record.registrar_controller == to_checksum_address("0x" + "ab" * 20)
    assert record.name_wrapper is None


def test_parse_document_filters_supported_and_rejects_empty() -> None:
    document = {"tlds": [{"tld": ".hii"}, {"tld": ".hi"}]}

    assert [record.tld for record in parse_document(document, supported=["hi"])] == [".hi"]
    with pytest.raises(ValueError):
        parse_document({"tlds": []})
    with pytest.raises(ValueError):
        parse_document(document, supported=[".eth"])
    with pytest.raises(ValueError):
        parse_document({"tlds": [{"tld": ".hi"}, {"tld": "hi"}]})


def test_remote_document_is_cached_for_ttl() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(200, json=_remote_document())

    now = [0.0]
    settings = HNSSettings(tld_source="remote", tld_config_url=REMOTE_URL, tld_cache_ttl=300)
    directory = TLDDirectory(settings, transport=httpx.MockTransport(handler), clock=lambda: now[0])

    assert directory.tlds() == [".hii"]
    assert directory.source == "remote"
    now[0] = 299.0
    directory.tlds()
    assert len(calls) == 1
    now[0] = 300.0
    directory.tlds()
    assert len(calls) == 2
    directory.invalidate()
    directory.tlds()
    assert len(calls) == 3


def test_remote_failure_falls_back_to_local(tmp_path) -> None:
    local = tmp_path / "tlds.json"
    local.write_text(json.dumps({"tlds": [{"tld": ".hi"}]}))

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    settings = HNSSettings(tld_source="remote", tld_config_url=REMOTE_URL, tld_config_path=local)
    directory = TLDDirectory(settings, transport=httpx.MockTransport(handler))

    assert directory.tlds() == [".hi"]
    assert directory.source == "local"


def test_yaml_document_is_supported(tmp_path) -> None:
    local = tmp_path / "tlds.yaml"
    local.write_text("tlds:\n  - tld: .hii\n    isPrimary: true\n    defaultEmail: ops@hii.network\n")

    directory = TLDDirectory(HNSSettings(tld_config_path=local))

    assert directory.primary().default_email == "ops@hii.network"
