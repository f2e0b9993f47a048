"""Core infrastructure: configuration, logging, errors and change notification."""
