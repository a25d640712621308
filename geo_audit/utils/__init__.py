"""Shared utilities: UTC time helpers, structured logging and console output."""
