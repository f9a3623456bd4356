"""paysync: turns connected mail accounts into structured payment records."""

__version__ = "1.0.0"
