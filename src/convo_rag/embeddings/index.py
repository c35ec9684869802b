"""
FAISS Vector Index

This module implements a persistent, file-backed FAISS index for one content
domain ("books" or "conversations").

Key Properties
--------------
- Cosine similarity via inner product over L2-normalised vectors
- Append-only persistence: every insert is written to disk immediately
- Reopening a path recovers every previously inserted entry
- Concurrency-safe (thread locking around reads and writes)
- Records are parsed back through a tagged union, never cast

Storage Layout
--------------
<path>/index.json      domain tag and vector dimension
<path>/vectors.f32     raw float32 rows, one per entry, in insertion order
<path>/records.jsonl   one JSON record per line, aligned with vectors.f32

A crash between the two appends of an insert can leave one file a row ahead of
the other. On load, only entries present in both files are kept and the files
are truncated back to that common length.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path
from threading import RLock
from typing import List, Optional, Sequence, Tuple

import faiss
import numpy as np
from pydantic import ValidationError

from .models import (
    BookChunkRecord,
    ConversationRecord,
    Domain,
    SearchResult,
    index_record_adapter,
)
from ..core.errors import StorageError

logger = logging.getLogger("rag.index")


# ---------------------------------------------------------------------
# FAISS Index Wrapper
# ---------------------------------------------------------------------

class FaissIndex:
    """
    Persistent single-domain FAISS index.

    Entries have no uniqueness constraint: inserting the same record twice
    produces two entries.
    """

    META_FILE = "index.json"
    VECTORS_FILE = "vectors.f32"
    RECORDS_FILE = "records.jsonl"

    def __init__(self, path: str | Path, domain: Domain) -> None:
        """
        Create an index handle. No I/O happens until `open()`.

        Parameters
        ----------
        path : str | Path
            Directory holding this index's files.

        domain : Domain
            Domain tag every stored record must carry.
        """
        self._path = Path(path)
        self._domain = Domain(domain)
        self._result_type = (
            SearchResult[BookChunkRecord]
            if self._domain is Domain.BOOKS
            else SearchResult[ConversationRecord]
        )

        self._index: Optional[faiss.IndexFlatIP] = None
        self._records: list = []
        self._dim: Optional[int] = None
        self._opened = False

        self._lock = RLock()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._path

    @property
    def domain(self) -> Domain:
        return self._domain

    @property
    def dimension(self) -> Optional[int]:
        return self._dim

    @property
    def is_open(self) -> bool:
        return self._opened

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> "FaissIndex":
        """
        Create backing storage on first use, otherwise load it.

        Calling this on an already open handle is a no-op.
        """
        with self._lock:
            if self._opened:
                return self

            try:
                self._path.mkdir(parents=True, exist_ok=True)
                if (self._path / self.META_FILE).exists():
                    self._load()
                else:
                    self._write_meta()
                    logger.info("Created %s index at %s", self._domain.value, self._path)
            except OSError as exc:
                raise StorageError(
                    f"Failed to open {self._domain.value} index: {type(exc).__name__}"
                ) from exc

            self._opened = True
            return self

    def clear(self) -> None:
        """
        Drop and recreate the backing storage (wholesale rebuild).
        """
        with self._lock:
            try:
                if self._path.exists():
                    shutil.rmtree(self._path)
                self._reset_memory()
                self._path.mkdir(parents=True, exist_ok=True)
                self._write_meta()
            except OSError as exc:
                raise StorageError(
                    f"Failed to clear {self._domain.value} index: {type(exc).__name__}"
                ) from exc
            self._opened = True
            logger.warning("Cleared %s index at %s", self._domain.value, self._path)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def insert(self, vector: Sequence[float], record) -> None:
        """
        Append one entry and persist it.

        Raises
        ------
        StorageError
            On dimension mismatch, wrong-domain record or any disk failure.
            A disk failure rolls back whatever part of the entry reached disk,
            so retrying the insert is safe.
        """
        if getattr(record, "domain", None) != self._domain.value:
            raise StorageError(
                f"Cannot store a {getattr(record, 'domain', type(record).__name__)} "
                f"record in the {self._domain.value} index."
            )

        if not vector:
            raise StorageError("Embedding vectors must be non-empty.")

        with self._lock:
            self._ensure_open()

            if self._dim is None:
                self._init_index(len(vector))
            elif len(vector) != self._dim:
                raise StorageError(
                    f"Vector dimension {len(vector)} does not match index "
                    f"dimension {self._dim}."
                )

            row = np.asarray([vector], dtype="float32")
            faiss.normalize_L2(row)

            vectors_path = self._path / self.VECTORS_FILE
            records_path = self._path / self.RECORDS_FILE

            try:
                sizes = (_file_size(vectors_path), _file_size(records_path))
            except OSError as exc:
                raise StorageError(
                    f"Failed to stat {self._domain.value} index files: {type(exc).__name__}"
                ) from exc

            try:
                with vectors_path.open("ab") as f:
                    row.tofile(f)
                with records_path.open("a", encoding="utf-8") as f:
                    f.write(record.model_dump_json() + "\n")
            except OSError as exc:
                # Both files must stay row-aligned for later appends
                self._rollback_append(*sizes)
                raise StorageError(
                    f"Failed to persist {self._domain.value} entry: {type(exc).__name__}"
                ) from exc

            self._index.add(row)
            self._records.append(record)

    def query(self, vector: Sequence[float], k: int = 5) -> List[SearchResult]:
        """
        Return up to `k` nearest entries, highest score first.

        An empty index yields an empty list.
        """
        with self._lock:
            self._ensure_open()

            if k <= 0 or self._index is None or self._index.ntotal == 0:
                return []

            if len(vector) != self._dim:
                raise StorageError(
                    f"Query dimension {len(vector)} does not match index "
                    f"dimension {self._dim}."
                )

            q = np.asarray([vector], dtype="float32")
            faiss.normalize_L2(q)

            scores, idxs = self._index.search(q, min(k, self._index.ntotal))

            results: List[SearchResult] = []
            for score, idx in zip(scores[0], idxs[0]):
                idx = int(idx)
                if idx < 0 or idx >= len(self._records):
                    continue
                results.append(
                    self._result_type(item=self._records[idx], score=float(score))
                )

            return results

    def count(self) -> int:
        with self._lock:
            self._ensure_open()
            return len(self._records)

    def get_stats(self) -> dict:
        """
        Return index statistics for diagnostics.
        """
        with self._lock:
            self._ensure_open()
            return {
                "domain": self._domain.value,
                "total_vectors": len(self._records),
                "dimension": self._dim,
                "path": str(self._path),
            }

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if not self._opened:
            self.open()

    def _reset_memory(self) -> None:
        self._index = None
        self._records = []
        self._dim = None

    def _init_index(self, dim: int) -> None:
        """
        Initialize a new cosine-similarity FAISS index and record its dimension.
        """
        self._dim = dim
        self._index = faiss.IndexFlatIP(dim)
        try:
            self._write_meta()
        except OSError as exc:
            raise StorageError(
                f"Failed to write {self._domain.value} index metadata: {type(exc).__name__}"
            ) from exc

    def _rollback_append(self, vectors_size: int, records_size: int) -> None:
        """
        Truncate both data files back to their sizes before a failed insert.

        If that fails too, the handle is marked closed so the next call reloads
        from disk, which drops the unmatched tail.
        """
        for path, size in (
            (self._path / self.VECTORS_FILE, vectors_size),
            (self._path / self.RECORDS_FILE, records_size),
        ):
            try:
                if _file_size(path) > size:
                    os.truncate(path, size)
            except OSError as exc:
                logger.error(
                    "Failed to roll back %s after a failed insert: %s",
                    path.name,
                    type(exc).__name__,
                )
                self._opened = False

    def _write_meta(self) -> None:
        meta = {"domain": self._domain.value, "dimension": self._dim}
        tmp_path = self._path / (self.META_FILE + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(meta, f)
        os.replace(tmp_path, self._path / self.META_FILE)

    def _load(self) -> None:
        """
        Load metadata, records and vectors, repairing a torn trailing write.
        """
        self._reset_memory()

        try:
            with (self._path / self.META_FILE).open("r", encoding="utf-8") as f:
                meta = json.load(f)
        except (OSError, ValueError) as exc:
            raise StorageError(
                f"Failed to read {self._domain.value} index metadata: {type(exc).__name__}"
            ) from exc

        if meta.get("domain") != self._domain.value:
            raise StorageError(
                f"Index at {self._path} belongs to domain {meta.get('domain')!r}, "
                f"not {self._domain.value!r}."
            )

        dim = meta.get("dimension")
        if dim is None:
            return

        records, torn = self._read_records()
        vectors, torn_row = self._read_vectors(int(dim))

        n = min(len(records), vectors.shape[0])
        if torn or torn_row or n != len(records) or n != vectors.shape[0]:
            logger.warning(
                "Repairing %s index: %d records, %d vectors; keeping %d",
                self._domain.value,
                len(records),
                vectors.shape[0],
                n,
            )
            self._truncate_files(n, int(dim))

        self._dim = int(dim)
        self._index = faiss.IndexFlatIP(self._dim)
        if n:
            self._index.add(np.ascontiguousarray(vectors[:n]))
        self._records = records[:n]

        logger.info(
            "Loaded %s index from %s (%d entries)",
            self._domain.value,
            self._path,
            n,
        )

    def _read_records(self) -> Tuple[list, bool]:
        """
        Parse complete record lines. The flag reports a torn final line.
        """
        path = self._path / self.RECORDS_FILE
        if not path.exists():
            return [], False

        records = []
        torn = False
        with path.open("r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                if not line.endswith("\n"):
                    torn = True
                    break
                try:
                    record = index_record_adapter.validate_json(line)
                except ValidationError as exc:
                    raise StorageError(
                        f"Corrupt record at {path.name}:{line_no}"
                    ) from exc
                if record.domain != self._domain.value:
                    raise StorageError(
                        f"Record at {path.name}:{line_no} has domain "
                        f"{record.domain!r}, expected {self._domain.value!r}."
                    )
                records.append(record)
        return records, torn

    def _read_vectors(self, dim: int) -> Tuple[np.ndarray, bool]:
        """
        Parse complete vector rows. The flag reports a partial final row.
        """
        path = self._path / self.VECTORS_FILE
        if not path.exists():
            return np.zeros((0, dim), dtype="float32"), False

        data = path.read_bytes()
        row_bytes = dim * np.dtype("float32").itemsize
        rows = len(data) // row_bytes
        vectors = np.frombuffer(data[: rows * row_bytes], dtype="float32").reshape(rows, dim)
        return vectors, len(data) != rows * row_bytes

    def _truncate_files(self, n: int, dim: int) -> None:
        vectors_path = self._path / self.VECTORS_FILE
        if vectors_path.exists():
            os.truncate(vectors_path, n * dim * np.dtype("float32").itemsize)

        records_path = self._path / self.RECORDS_FILE
        if records_path.exists():
            with records_path.open("r", encoding="utf-8") as f:
                lines = f.readlines()[:n]
            # Drop a torn trailing line kept by readlines()
            lines = [line for line in lines if line.endswith("\n")]
            with records_path.open("w", encoding="utf-8") as f:
                f.writelines(lines)


def _file_size(path: Path) -> int:
    return path.stat().st_size if path.exists() else 0
