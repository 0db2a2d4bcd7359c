"""Vector index and similarity backends."""

from __future__ import annotations

from webrag.index.numpy_backend import NumpyIndexBackend
from webrag.index.store import BackendFactory, VectorIndex, numpy_backend_factory


def __getattr__(name: str):
    """Lazy import with clear error messages for missing dependencies."""
    if name == "FaissIndexBackend":
        try:
            from webrag.index.faiss_backend import FaissIndexBackend

            return FaissIndexBackend
        except ImportError:
            raise ImportError(
                "FaissIndexBackend requires 'faiss-cpu'. Install with: pip install webrag[faiss]"
            ) from None
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "BackendFactory",
    "FaissIndexBackend",
    "NumpyIndexBackend",
    "VectorIndex",
    "numpy_backend_factory",
]
