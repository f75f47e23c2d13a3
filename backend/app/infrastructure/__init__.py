"""Infrastructure Layer — external service clients and cross-cutting concerns.

Invariants:
    - Every external call has a timeout and maps failures to core/errors.py types
    - No retries here: retry policy belongs to the caller

Design Decisions:
    - httpx.AsyncClient per client, transport injectable for tests
"""
