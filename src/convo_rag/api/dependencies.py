"""
Route dependencies.

Service objects are built once by the application lifespan and live on
`app.state`; tests replace them through `app.dependency_overrides`.
"""

from fastapi import Request

from ..embeddings.embedder import Embedder
from ..embeddings.registry import IndexRegistry
from ..retrieval.context import ContextFormatter
from ..retrieval.service import RetrievalService


def get_embedder(request: Request) -> Embedder:
    return request.app.state.embedder


def get_registry(request: Request) -> IndexRegistry:
    return request.app.state.registry


def get_retrieval(request: Request) -> RetrievalService:
    return request.app.state.retrieval


def get_formatter(request: Request) -> ContextFormatter:
    return request.app.state.formatter
