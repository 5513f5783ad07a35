"""Comment Pulse core — Graph API client, credential vault, job store and analysis engine."""

__version__ = "0.1.0"
