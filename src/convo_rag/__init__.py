"""Retrieval-augmented generation core for the conversation practice app."""

__version__ = "0.1.0"
