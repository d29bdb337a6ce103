"""In-process tests for the awards voting service.

These tests run against the in-memory store and need no external services:

- Voting eligibility gate and window boundaries
- Vote submission, batch submission and fallback
- Ballot lifecycle and finalization
- HTTP endpoints through the FastAPI test client
"""
