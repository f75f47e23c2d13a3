"""ORM Models — SQLAlchemy declarative models for the shared verification store.

Invariants:
    - All models inherit from Base (db/base.py)

Design Decisions:
    - All models imported here so Base.metadata is complete before create_all
      and Alembic autogenerate
"""

from app.models.verification_record import VerificationRecordRow  # noqa: F401
