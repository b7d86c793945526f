"""Evidence verification: cross-check generated entries against the repository.

Unlike generation, verification never fails on a bad search: every problem
becomes a warning on the entry's evidence and lowers its confidence.
"""
