"""Integration tests for the awards voting service.

This package contains integration tests that run against a live stack:

- End-to-end vote and ballot flow with PostgreSQL procedures
- API endpoint validation
- Concurrent request handling

All tests require the API, PostgreSQL and Redis to be running.
"""

__version__ = "1.0.0"
