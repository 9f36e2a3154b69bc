"""Server-side mapping from application user to Stripe customer."""

from datetime import datetime
from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from fitness_tracker.models.base import Base, UTCDateTime, utcnow


class BillingCustomer(Base):
    """One Stripe customer id per application user."""

    __tablename__ = "billing_customers"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    customer_id: Mapped[str] = mapped_column(String(255), index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<BillingCustomer(user_id='{self.user_id}', customer_id='{self.customer_id}')>"
