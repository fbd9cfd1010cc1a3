"""
Shared infrastructure for the sync service.

- config: Settings read from the environment / .env
- database: async engine, session factory, schema helpers
- exceptions: SyncException tree used by fetchers, loaders and the runner
- logging: stdout logging setup for the API and the scripts

Typical entry point:

    from core.config import settings
    from core.database import async_session_maker
    from core.logging import setup_logging

    setup_logging()
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    # Exceptions
    "SyncException",
    "FetchError",
    "APIRequestError",
    "NetworkError",
    "RateLimitError",
    "AuthenticationError",
    "ResourceNotFoundError",
    "UnexpectedResponseError",
    "LoadError",
    "UpsertError",
    "ReconciliationError",
    "RunSealedError",
    "LeaseHeldError",
    "RetryableError",
    "NonRetryableError",
]
