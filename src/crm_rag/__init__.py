"""Retrieval-augmented question answering over auto body shop CRM records."""

__version__ = "0.1.0"
