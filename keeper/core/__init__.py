"""Core configuration, logging and retry helpers."""
