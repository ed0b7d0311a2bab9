"""Ambient infrastructure: logging and settings."""
