"""Core configuration, models, errors and logging."""
