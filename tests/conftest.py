"""Shared fixtures.

Sessions get a storage service rooted in a per-test temp directory.
"""

from __future__ import annotations

import pytest

from services.session_store import Session, SessionStore
from services.storage_service import LocalStorageProvider, StorageService


@pytest.fixture
def storage(tmp_path) -> StorageService:
    provider = LocalStorageProvider(output_dir=str(tmp_path / "outputs"))
    return StorageService(provider=provider, base_url="http://testserver")


@pytest.fixture
def store(storage) -> SessionStore:
    return SessionStore(storage)


@pytest.fixture
def session(store) -> Session:
    return store.create()
