from .relay_store import RelayStore
from .memory_store import MemoryStore


def __getattr__(name):
    """Lazy imports for optional dependencies."""
    if name == "MongoDBStore":
        from .mongodb_store import MongoDBStore
        return MongoDBStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    'RelayStore',
    'MemoryStore',
    'MongoDBStore',
]
