"""Kernel services: audit trail and its persistence."""
