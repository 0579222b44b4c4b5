"""Discovery ranking and conversation-lane engine for Stitch."""

__version__ = "0.1.0"
