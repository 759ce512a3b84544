"""
supa-dynamic Test Configuration

Shared pytest fixtures and configuration for all test types.
"""

import os
from pathlib import Path
from typing import Generator, List

import pytest
import structlog

from supadynamic.core.config import reset_settings
from supadynamic.core.keystore import Keystore, derive_key
from supadynamic.http.dispatcher import RetryingDispatcher
from supadynamic.http.requester import SingleShotRequester
from supadynamic.vault.store import SecretStore

# Low iteration count keeps key derivation fast in tests
TEST_KDF_ITERATIONS = 1_000
TEST_URL = "https://api.example.com/functions/v1/hello"


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Point HOME at a temp dir and clear SUPADYNAMIC_ env vars.

    Keeps the developer's ~/.supa-dynamic/config.yaml out of the tests.
    """
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for key in list(os.environ):
        if key.startswith("SUPADYNAMIC_"):
            monkeypatch.delenv(key)
    reset_settings()
    yield home
    reset_settings()
    structlog.reset_defaults()


@pytest.fixture
def sleeps() -> List[float]:
    """Collects delays passed to the dispatcher's sleep function."""
    return []


@pytest.fixture
def dispatcher(sleeps: List[float]) -> RetryingDispatcher:
    """Dispatcher with the default schedule and a recording, non-blocking sleep."""
    return RetryingDispatcher(requester=SingleShotRequester(), sleep=sleeps.append)


@pytest.fixture
def keystore() -> Keystore:
    """Keystore with a fixed key."""
    return Keystore(derive_key("test-password", b"0123456789abcdef", TEST_KDF_ITERATIONS))


@pytest.fixture
def vault_url(tmp_path: Path) -> str:
    """SQLite URL for a throwaway vault database."""
    return f"sqlite:///{tmp_path / 'vault.sqlite'}"


@pytest.fixture
def secret_store(vault_url: str) -> Generator[SecretStore, None, None]:
    """Opened secret store backed by a temp SQLite file."""
    store = SecretStore.open(vault_url, "test-password", TEST_KDF_ITERATIONS)
    yield store
    store.close()
