"""tasklanes: status lanes with user-controlled ordering, synchronized through a real-time document store."""

__version__ = "0.1.0"
