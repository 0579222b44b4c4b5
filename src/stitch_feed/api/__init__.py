"""HTTP API for the Stitch feed engine."""
