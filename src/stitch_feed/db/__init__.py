"""Database helpers for the Stitch content store."""
