"""
Product catalog collaborator.

The engine only asks two things of a catalog: which of these identifiers
exist (one batched call per validation) and what is known about one
identifier. FrameCatalog answers from a pandas product table;
CachedCatalog puts any CacheStore in front of another catalog.
"""

from dataclasses import asdict, dataclass
import logging
from pathlib import Path
from typing import Iterable, Protocol

import pandas as pd

from ..core.errors import CatalogUnavailableError
from ..core.parsers import CategoryNormalizer, normalize_identifier, to_float
from .cache import CacheStore

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogEntry:
    identifier: str
    name: str
    cost: float = 0.0
    category: str | None = None


class Catalog(Protocol):
    def existing(self, identifiers: Iterable[str]) -> set[str]: ...

    def resolve(self, identifier: str) -> CatalogEntry | None: ...


class FrameCatalog:
    """
    Catalog backed by a product table.

    Expected columns: identifier, name, cost and optionally category.
    Identifiers are normalized the same way count files are.
    """

    COLUMN_ALIASES = {
        "ean": "identifier",
        "codebar": "identifier",
        "codigo": "identifier",
        "descripcion": "name",
        "nombre": "name",
        "costo": "cost",
        "categoria": "category",
    }

    def __init__(self, products: pd.DataFrame):
        df = products.rename(columns=lambda c: str(c).strip().lower())
        df = df.rename(columns=self.COLUMN_ALIASES)
        if "identifier" not in df.columns:
            raise ValueError("Product table needs an identifier column")
        categories = CategoryNormalizer()
        self._entries: dict[str, CatalogEntry] = {}
        for row in df.to_dict("records"):
            identifier = normalize_identifier(row.get("identifier"))
            if not identifier:
                continue
            name = row.get("name")
            self._entries[identifier] = CatalogEntry(
                identifier=identifier,
                name="" if pd.isna(name) else str(name).strip(),
                cost=max(to_float(row.get("cost")), 0.0),
                category=categories.normalize(row.get("category")) if "category" in df.columns else None,
            )

    @classmethod
    def from_file(cls, path: Path | str) -> "FrameCatalog":
        path = Path(path)
        try:
            if path.suffix.lower() in {".xlsx", ".xls"}:
                frame = pd.read_excel(path)
            else:
                frame = pd.read_csv(path)
        except OSError as exc:
            raise CatalogUnavailableError(f"Could not read catalog {path}: {exc}") from exc
        LOGGER.info("Loaded %d catalog rows from %s", len(frame), path)
        return cls(frame)

    def __len__(self) -> int:
        return len(self._entries)

    def existing(self, identifiers: Iterable[str]) -> set[str]:
        """The given identifiers (as passed in) whose normalized form is known."""
        return {i for i in identifiers if (normalize_identifier(i) or "") in self._entries}

    def resolve(self, identifier: str) -> CatalogEntry | None:
        return self._entries.get(normalize_identifier(identifier) or "")


class CachedCatalog:
    """Read-through cache in front of another catalog."""

    def __init__(self, inner: Catalog, cache: CacheStore):
        self.inner = inner
        self.cache = cache

    def existing(self, identifiers: Iterable[str]) -> set[str]:
        known: set[str] = set()
        misses: list[str] = []
        for identifier in identifiers:
            hit = self.cache.get(f"exists:{identifier}")
            if hit is None:
                misses.append(identifier)
            elif hit:
                known.add(identifier)
        if misses:
            found = self.inner.existing(misses)
            for identifier in misses:
                self.cache.put(f"exists:{identifier}", identifier in found)
            known |= found
        return known

    def resolve(self, identifier: str) -> CatalogEntry | None:
        key = f"product:{identifier}"
        hit = self.cache.get(key)
        if hit is not None:
            return CatalogEntry(**hit)
        entry = self.inner.resolve(identifier)
        if entry is not None:
            self.cache.put(key, asdict(entry))
        return entry
