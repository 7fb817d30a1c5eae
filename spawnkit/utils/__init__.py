"""Shared helpers for logging, tracing and time handling."""
