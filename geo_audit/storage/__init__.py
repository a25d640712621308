"""Persistence of assembled audit records (SQLite and JSON sinks)."""
