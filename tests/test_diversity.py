import math
from collections import Counter

from conftest import book_result
from convo_rag.retrieval.diversity import diversify


def test_dominant_book_cannot_fill_results():
    raw = [book_result("A", 0.99 - i * 0.01) for i in range(8)]
    raw.insert(3, book_result("B", 0.90))
    raw.insert(5, book_result("C", 0.88))
    raw.append(book_result("B", 0.70))
    raw.append(book_result("C", 0.69))

    picked = diversify(raw, 5)
    counts = Counter(r.item.book_title for r in picked)

    assert len(picked) == 5
    assert set(counts) == {"A", "B", "C"}
    assert max(counts.values()) <= math.ceil(5 / 3) + 1


def test_rotation_follows_first_appearance_and_score_within_book():
    raw = [
        book_result("A", 0.9),
        book_result("A", 0.8),
        book_result("B", 0.7),
        book_result("A", 0.6),
        book_result("B", 0.5),
    ]

    picked = diversify(raw, 4)

    assert [(r.item.book_title, r.score) for r in picked] == [
        ("A", 0.9),
        ("B", 0.7),
        ("A", 0.8),
        ("B", 0.5),
    ]


def test_exhausted_books_leave_rotation():
    raw = [book_result("A", 0.9), book_result("B", 0.8), book_result("A", 0.7), book_result("A", 0.6)]

    picked = diversify(raw, 10)

    assert [r.score for r in picked] == [0.9, 0.8, 0.7, 0.6]


def test_empty_and_zero_k():
    assert diversify([], 5) == []
    assert diversify([book_result("A", 0.9)], 0) == []
