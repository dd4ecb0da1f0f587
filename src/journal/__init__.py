"""
Append-only JSON lines journal of sync outcomes.
"""

from journal.writer import JournalWriter

__all__ = ["JournalWriter"]
