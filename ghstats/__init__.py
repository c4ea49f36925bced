"""GitHub traffic statistics: API client, SQLite store, sync jobs and web endpoints."""

__version__ = "0.7.1"
__all__ = ["__version__"]