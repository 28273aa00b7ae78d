"""SQLAlchemy ORM models for usage accounting and generation records."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class UsageEvent(Base):
    """
    Append-only audit row, one per completed pipeline run.

    Never updated after insert.
    """

    __tablename__ = "usage_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    account_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    cost_usd: Mapped[float] = mapped_column(Float, nullable=False)
    billed_units: Mapped[int] = mapped_column(Integer, nullable=False)
    models_used: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    fix_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    period: Mapped[str] = mapped_column(String(7), nullable=False)  # YYYY-MM
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), nullable=False, index=True
    )

    __table_args__ = (Index("ix_usage_events_account_period", "account_id", "period"),)

    def __repr__(self) -> str:
        return (
            f"<UsageEvent(request_id={self.request_id}, account_id={self.account_id}, "
            f"units={self.billed_units})>"
        )


class UsageTotal(Base):
    """
    Mutable running total of billed units for one account.

    The total belongs to ``period``; a write in a later period resets it.
    """

    __tablename__ = "usage_totals"

    account_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    period: Mapped[str] = mapped_column(String(7), nullable=False)  # YYYY-MM
    total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<UsageTotal(account_id={self.account_id}, period={self.period}, total={self.total})>"


class Generation(Base):
    """Final state of one code generation request."""

    __tablename__ = "generations"

    request_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    account_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    dialect: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, index=True
    )  # success, error, unverified, template
    fix_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    model: Mapped[str | None] = mapped_column(String(128), nullable=True)
    models_used: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    code_length: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    input_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    output_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    latency_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    errors_json: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<Generation(request_id={self.request_id}, status={self.status})>"
