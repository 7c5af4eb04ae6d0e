"""Global test fixtures for the mdk test suite."""

from __future__ import annotations

import os

import pytest
from helpers import FakeOpener, FakeSigner

from mdkcli.core.config import clear_settings_cache
from mdkcli.crypto.local import LocalGroupEngine
from mdkcli.transport.memory import MemoryRelay

# ============================================================================
# Environment
# ============================================================================


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove all MDK_ environment variables and reset cached settings."""
    for key in list(os.environ.keys()):
        if key.startswith("MDK_"):
            monkeypatch.delenv(key, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


# ============================================================================
# Identities
# ============================================================================


@pytest.fixture
def alice():
    return FakeSigner("alice")


@pytest.fixture
def bob():
    return FakeSigner("bob")


@pytest.fixture
def carol():
    return FakeSigner("carol")


# ============================================================================
# Engines and transport
# ============================================================================


@pytest.fixture
def alice_engine(alice):
    engine = LocalGroupEngine(alice)
    yield engine
    engine.close()


@pytest.fixture
def bob_engine(bob):
    engine = LocalGroupEngine(bob)
    yield engine
    engine.close()


@pytest.fixture
def carol_engine(carol):
    engine = LocalGroupEngine(carol)
    yield engine
    engine.close()


@pytest.fixture
def relay():
    return MemoryRelay()


@pytest.fixture
def opener():
    return FakeOpener()
