"""Data access gateways."""
