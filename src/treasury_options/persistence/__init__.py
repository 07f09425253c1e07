"""Persistence: the append-only audit log."""
