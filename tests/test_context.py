from unittest.mock import AsyncMock

import pytest

from conftest import book_result
from convo_rag.core.errors import ProviderError
from convo_rag.retrieval.context import ContextFormatter, build_augmented_prompt
from convo_rag.retrieval.service import RetrievalService

PROSE = " ".join(["people open up when they feel heard"] * 72)


@pytest.fixture
def formatter():
    return ContextFormatter(min_chars=200, blocked_phrases=[])


@pytest.mark.parametrize(
    "content",
    [
        "References\n" + PROSE,
        PROSE + " see the bibliography",
        "Smith, J. A. (1999). Listening.\n" + PROSE,
        PROSE + " Copyright 2020",
        PROSE + " © Publisher",
        PROSE + " pages 112, 204, 318 and 422",
        PROSE + " Smith, J. and Jones, K. and Brown, L. and Green, M.",
        "too short",
    ],
)
def test_default_filters_reject(formatter, content):
    assert formatter.rejection_reason(content) is not None


def test_plain_prose_is_kept(formatter):
    assert formatter.rejection_reason(PROSE) is None


def test_blocked_phrases_are_case_insensitive():
    formatter = ContextFormatter(min_chars=10, blocked_phrases=["Simulated Prison"])

    assert formatter.rejection_reason(PROSE + " the simulated prison study") is not None
    assert formatter.rejection_reason(PROSE) is None


def test_format_context_layout(formatter):
    results = [
        book_result("Talk Better", 0.875, content=f"  {PROSE}  ", chapter="Chapter 2"),
        book_result("Talk Better", 0.5, content="References\n" + PROSE),
        book_result("Talk Better", 0.4, content=PROSE),
    ]

    context = formatter.format_context(results)

    assert context.startswith('The following information is from the book "Talk Better":')
    assert "📚 Source 1 (Relevance: 87.5%)\nBook: Talk Better\nChapter 2\n\nContent:\n" + PROSE in context
    assert "📚 Source 2 (Relevance: 40.0%)\nBook: Talk Better\nChapter unknown" in context
    assert "Source 3" not in context
    assert "\n---\n" in context
    assert context.rstrip().endswith("Mention the book title in your response")


def test_format_context_empty_when_everything_filtered(formatter):
    assert formatter.format_context([book_result("B", 0.9, content="short")]) == ""
    assert formatter.format_context([]) == ""


def test_augment_leaves_base_unchanged_for_empty_context(formatter):
    assert formatter.augment("You are a partner.", "") == "You are a partner."
    assert formatter.augment("Base", "Context") == "Base\n\nContext"


@pytest.mark.asyncio
async def test_build_augmented_prompt_keeps_unfiltered_sources(formatter):
    retrieval = AsyncMock(spec=RetrievalService)
    retrieval.retrieve.return_value = [
        book_result("Talk Better", 0.9, content="References\n" + PROSE),
        book_result("Talk Better", 0.8, content=PROSE),
    ]

    augmented = await build_augmented_prompt(retrieval, formatter, "how to listen?", "Base")

    retrieval.retrieve.assert_awaited_once_with("how to listen?", 3)
    assert augmented.prompt.startswith("Base\n\nThe following information")
    assert len(augmented.sources) == 2
    assert augmented.rag_info() == {
        "source_count": 2,
        "book_title": "Talk Better",
        "top_score": 0.9,
    }


@pytest.mark.asyncio
async def test_build_augmented_prompt_without_results(formatter):
    retrieval = AsyncMock(spec=RetrievalService)
    retrieval.retrieve.return_value = []

    augmented = await build_augmented_prompt(retrieval, formatter, "q", "Base")

    assert augmented.prompt == "Base"
    assert augmented.rag_used is False
    assert augmented.rag_info() is None


@pytest.mark.asyncio
async def test_build_augmented_prompt_propagates_errors(formatter):
    retrieval = AsyncMock(spec=RetrievalService)
    retrieval.retrieve.side_effect = ProviderError("down")

    with pytest.raises(ProviderError):
        await build_augmented_prompt(retrieval, formatter, "q", "Base")
