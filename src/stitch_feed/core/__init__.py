"""Core configuration for the Stitch feed engine."""
