"""Logging helpers for jsonstore."""
