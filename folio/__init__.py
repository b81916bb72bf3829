"""
Folio - Offline-aware Data Layer

Data access for the Folio reading app: tagged read-through caching over a
remote document store, mutation-driven invalidation, and book catalog search.
"""

__version__ = "1.0.0"

from folio.data_layer import DataLayer

__all__ = ["DataLayer", "__version__"]
