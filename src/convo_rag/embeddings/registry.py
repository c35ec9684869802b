"""
Domain Index Registry

This module manages the per-domain FAISS indexes living under one storage
root. Each domain ("books", "conversations") gets its own subdirectory and its
own `FaissIndex`; domains share no state.

A registry is constructed once at process start and passed to the components
that need it, instead of being reached through module globals.

Thread Safety
-------------
- The registry is protected by an RLock
- Individual FaissIndex instances have their own locks
- Concurrent `open_or_create` calls for one domain return the same handle
"""

from __future__ import annotations

import logging
from pathlib import Path
from threading import RLock
from typing import Dict, List, Optional

from .index import FaissIndex
from .models import Domain, IndexStats
from ..config import settings

logger = logging.getLogger("rag.index")


class IndexRegistry:
    """
    Owner of the process-wide index handles for every domain.
    """

    def __init__(self, root: Optional[str | Path] = None) -> None:
        """
        Parameters
        ----------
        root : Optional[str | Path]
            Storage root. Defaults to settings.vector_storage_path.
        """
        self._root = Path(root or settings.vector_storage_path)
        self._indexes: Dict[Domain, FaissIndex] = {}
        self._lock = RLock()

    @property
    def root(self) -> Path:
        return self._root

    def index_path(self, domain: Domain) -> Path:
        return self._root / Domain(domain).value

    def open_or_create(self, domain: Domain) -> FaissIndex:
        """
        Get or create the index for a domain.

        Idempotent: the first caller creates and opens the index, every later
        caller receives the same handle.
        """
        domain = Domain(domain)
        with self._lock:
            index = self._indexes.get(domain)
            if index is not None:
                return index

            index = FaissIndex(self.index_path(domain), domain).open()
            self._indexes[domain] = index
            return index

    def books(self) -> FaissIndex:
        return self.open_or_create(Domain.BOOKS)

    def conversations(self) -> FaissIndex:
        return self.open_or_create(Domain.CONVERSATIONS)

    def initialize(self) -> List[str]:
        """
        Open both domain indexes, creating storage where missing.

        Returns the names of the initialized indexes.
        """
        names = []
        for domain in (Domain.CONVERSATIONS, Domain.BOOKS):
            self.open_or_create(domain)
            names.append(domain.value)
        logger.info("Vector indexes ready under %s: %s", self._root, ", ".join(names))
        return names

    def stats(self, dimension: Optional[int] = None) -> IndexStats:
        """
        Entry counts per domain, plus dimension and storage location.

        The dimension is the one learned by the book index when it has data,
        otherwise the configured value.
        """
        conversations = self.conversations()
        books = self.books()

        conversation_count = conversations.count()
        book_count = books.count()

        return IndexStats(
            conversations=conversation_count,
            book_chunks=book_count,
            total_vectors=conversation_count + book_count,
            dimension=(
                books.dimension
                or conversations.dimension
                or dimension
                or settings.vector_dimension
            ),
            storage_path=str(self._root),
        )
