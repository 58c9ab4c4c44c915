"""Shared utilities: structured logging and temporal parsing."""
