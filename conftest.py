"""Repository-wide pytest configuration.

Pins the import path so ``hns_client`` resolves regardless of the invocation
directory, and strips ``HNS_*`` variables from the environment so a
developer's shell configuration cannot leak into test settings.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("PYTHONPATH", str(ROOT))


@pytest.fixture(autouse=True)
def _isolate_hns_environment(monkeypatch):
    for key in list(os.environ):
        if key.startswith("HNS_"):
            monkeypatch.delenv(key, raising=False)

    from hns_client.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
