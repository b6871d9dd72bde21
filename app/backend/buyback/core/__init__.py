"""Core infrastructure: settings, logging, database and exceptions."""
