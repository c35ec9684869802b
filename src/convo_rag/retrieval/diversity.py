"""Round-robin result spreading across source books."""

from __future__ import annotations

from collections import OrderedDict, deque
from typing import Deque, Dict, List, Sequence

from ..embeddings.models import BookChunkRecord, SearchResult


def diversify(
    results: Sequence[SearchResult[BookChunkRecord]],
    k: int,
) -> List[SearchResult[BookChunkRecord]]:
    """
    Pick up to `k` results, rotating across books.

    Books rotate in the order they first appear in `results`; each turn takes
    that book's best remaining result. Exhausted books leave the rotation.
    Within a book, the input order (score descending) is preserved.
    """
    groups: Dict[str, Deque[SearchResult[BookChunkRecord]]] = OrderedDict()
    for result in results:
        groups.setdefault(result.item.book_title, deque()).append(result)

    rotation = deque(groups.values())
    picked: List[SearchResult[BookChunkRecord]] = []

    while rotation and len(picked) < k:
        group = rotation.popleft()
        picked.append(group.popleft())
        if group:
            rotation.append(group)

    return picked
