"""Shared errors, logging helpers, constants and protocols."""
