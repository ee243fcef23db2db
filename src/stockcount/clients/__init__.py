# Collaborators behind the engine: config, catalog, cache, storage and file loading
# Swap any of these for a site-specific implementation of the same protocol

from .config import StockCountConfig, ConfigGoalProvider, load_config
from .cache import MemoryCache, JsonFileCache
from .catalog import CatalogEntry, FrameCatalog, CachedCatalog
from .persistence import MemoryInventoryStore, JsonInventoryStore
from .count_loader import CountFileLoader, SingleCountImport

__all__ = [
    "StockCountConfig",
    "ConfigGoalProvider",
    "load_config",
    "MemoryCache",
    "JsonFileCache",
    "CatalogEntry",
    "FrameCatalog",
    "CachedCatalog",
    "MemoryInventoryStore",
    "JsonInventoryStore",
    "CountFileLoader",
    "SingleCountImport",
]
