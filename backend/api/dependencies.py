"""
Route dependencies. Tests swap these via app.dependency_overrides.
"""

from services.operations import ImageOperations, image_operations
from services.session_store import SessionStore, session_store
from services.storage_service import StorageService, storage_service


def get_session_store() -> SessionStore:
    return session_store


def get_operations() -> ImageOperations:
    return image_operations


def get_storage() -> StorageService:
    return storage_service
