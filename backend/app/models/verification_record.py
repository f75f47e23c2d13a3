"""VerificationRecord ORM — shared-store row for the database verification backend.

Invariants:
    - phone is the primary key and always the normalized phone
    - timestamp is epoch milliseconds (BigInteger), same unit as the webhook

Design Decisions:
    - Used only when VERIFICATION_STORE=database; the memory backend has no table
"""

from sqlalchemy import BigInteger, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class VerificationRecordRow(Base):
    """One verification outcome per normalized phone."""
    __tablename__ = "verification_records"

    phone: Mapped[str] = mapped_column(String(32), primary_key=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    whatsapp_username: Mapped[str | None] = mapped_column(String(128), nullable=True)
    whatsapp_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
