"""Root conftest — shared test configuration."""

import os

# Ensure tests never reach a real agent backend or database
os.environ.setdefault("AGENT_BE_URL", "http://agent.test")
os.environ.setdefault("VERIFICATION_STORE", "memory")
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///:memory:",
)
