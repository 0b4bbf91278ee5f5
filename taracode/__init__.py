"""Tara Code: a terminal coding assistant for self-hosted LLM servers."""

__version__ = "0.1.0"
