"""Server-side record of which Stripe customer belongs to which user."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from fitness_tracker.models.billing_customer import BillingCustomer

logger = logging.getLogger(__name__)


class CustomerRegistry:
    """
    Keyed by application user id, one customer per user.

    Written on checkout and on email recovery, cleared when Stripe reports
    the stored id stale.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[BillingCustomer]:
        return self.db.get(BillingCustomer, user_id)

    def set(self, user_id: str, customer_id: str, email: Optional[str] = None) -> BillingCustomer:
        """Store or overwrite the mapping; a missing email keeps the old one."""
        record = self.get(user_id)

        if record is None:
            record = BillingCustomer(user_id=user_id, customer_id=customer_id, email=email)
            self.db.add(record)
        elif record.customer_id == customer_id and (email is None or record.email == email):
            return record
        else:
            if record.customer_id != customer_id:
                logger.info(
                    f"Replacing customer {record.customer_id} with {customer_id} for user {user_id}"
                )
            record.customer_id = customer_id
            if email is not None:
                record.email = email

        self.db.commit()
        self.db.refresh(record)
        return record

    def clear(self, user_id: str, customer_id: Optional[str] = None) -> bool:
        """
        Remove the mapping for ``user_id``.

        When ``customer_id`` is given, only a mapping to that customer is
        removed.

        Returns:
            True if a mapping was removed
        """
        record = self.get(user_id)
        if record is None:
            return False
        if customer_id is not None and record.customer_id != customer_id:
            return False

        self.db.delete(record)
        self.db.commit()
        logger.info(f"Cleared stale customer {record.customer_id} for user {user_id}")
        return True
