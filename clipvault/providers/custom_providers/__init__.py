from .storage_provider import LocalStorageProvider

__all__ = [
    'LocalStorageProvider'
]
