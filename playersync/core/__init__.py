"""Core infrastructure: configuration, logging, database, metrics, alerts, errors."""
