"""YYYY-NNNNN reference numbers for order approvals"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..models.base import utcnow
from ..models.order_approval import ReferenceNumberSequence

logger = logging.getLogger(__name__)


def format_reference_number(year: int, sequence: int) -> str:
    return f"{year}-{sequence:05d}"


def generate_reference_number(db: Session, org_id: UUID, year: Optional[int] = None) -> str:
    """Take the next reference number of the organization for a year.

    The sequence row is locked for the rest of the transaction, so numbers
    are unique and, since the counter only grows, never reused even when
    approvals are deleted.

    Args:
        db: Database session; the caller commits
        org_id: Organization
        year: Year of the reference (defaults to the current year)

    Returns:
        str: Reference number such as "2024-00001"
    """
    year = year or utcnow().year

    sequence = (
        db.query(ReferenceNumberSequence)
        .filter(ReferenceNumberSequence.org_id == org_id, ReferenceNumberSequence.year == year)
        .with_for_update()
        .first()
    )
    if sequence is None:
        sequence = ReferenceNumberSequence(org_id=org_id, year=year, last_sequence=0)
        db.add(sequence)

    sequence.last_sequence = (sequence.last_sequence or 0) + 1
    sequence.updated_at = utcnow()
    db.flush()

    reference = format_reference_number(year, sequence.last_sequence)
    logger.debug(f"Generated reference number {reference} for org {org_id}")
    return reference
