"""Shared helpers for nodedeps."""
