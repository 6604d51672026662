"""
Module: ledger_kernel.models.schema_version
Responsibility: Records which schema migrations have been applied, with the
    metadata checksum the code expected when each was applied.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class SchemaVersion(Base):
    """One applied migration."""

    __tablename__ = "ledger_schema_version"

    version: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)

    description: Mapped[str] = mapped_column(String(255), nullable=False)

    checksum: Mapped[str] = mapped_column(String(64), nullable=False)

    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
