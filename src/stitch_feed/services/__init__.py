"""Feed, discovery and conversation lane services."""
