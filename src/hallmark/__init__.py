"""Hallmark: evidence-checked release notes from LLM command-line backends."""

__version__ = "0.1.0"
