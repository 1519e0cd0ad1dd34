"""Vendor lookup, CSV export and CSV import"""

import csv
import logging
from io import StringIO
from typing import Iterable, List, Optional
from uuid import UUID

import chardet
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.user import User
from ..models.vendor import Vendor
from .schemas import VendorImportError, VendorImportResult

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = (
    "VENDOR", "EMAIL", "PHONE", "CONTACT_PERSON", "ADDRESS", "CITY",
    "STATE", "ZIP", "CATEGORY", "STATUS", "NOTES", "SPECIALTIES",
)

_IMPORT_FIELDS = {
    "email": "email",
    "phone": "phone",
    "contact_person": "contact_person",
    "address": "address",
    "city": "city",
    "state": "state",
    "zip": "zip",
    "category": "category",
    "notes": "notes",
}


class VendorNotFoundError(Exception):
    """Raised when a vendor user has no matching vendor record"""
    pass


def find_by_name(db: Session, org_id: UUID, name: str, exclude_id: Optional[UUID] = None) -> Optional[Vendor]:
    """Vendor of the organization with this name, compared case-insensitively."""
    query = db.query(Vendor).filter(
        Vendor.org_id == org_id,
        func.lower(Vendor.name) == name.strip().lower(),
    )
    if exclude_id is not None:
        query = query.filter(Vendor.id != exclude_id)
    return query.first()


def vendor_for_user(db: Session, user: User) -> Vendor:
    """Vendor record a vendor user acts for, matched by email.

    Raises:
        VendorNotFoundError: If no active vendor record has the user's email
    """
    vendor = (
        db.query(Vendor)
        .filter(
            Vendor.org_id == user.org_id,
            func.lower(Vendor.email) == (user.email or "").lower(),
            Vendor.deleted_at.is_(None),
        )
        .first()
    )
    if vendor is None:
        raise VendorNotFoundError("Vendor profile not found for this user")
    return vendor


def export_csv(vendors: Iterable[Vendor]) -> str:
    """Vendors as CSV, one row per vendor with specialties joined by '; '."""
    buffer = StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for vendor in vendors:
        writer.writerow([
            vendor.name,
            vendor.email or "",
            vendor.phone or "",
            vendor.contact_person or "",
            vendor.address or "",
            vendor.city or "",
            vendor.state or "",
            vendor.zip or "",
            vendor.category or "",
            vendor.status or "",
            vendor.notes or "",
            "; ".join(vendor.specialties or []),
        ])
    return buffer.getvalue()


def _decode(file_bytes: bytes) -> str:
    detected = chardet.detect(file_bytes)
    encoding = detected['encoding'] or 'utf-8'
    try:
        return file_bytes.decode(encoding)
    except (UnicodeDecodeError, LookupError):
        return file_bytes.decode('utf-8', errors='replace')


def _normalize_header(name: Optional[str]) -> str:
    return (name or "").strip().lower().replace(" ", "_")


def import_csv(db: Session, org_id: UUID, file_bytes: bytes) -> VendorImportResult:
    """Create vendors from a CSV file.

    The first column (or a column named VENDOR or NAME) holds the vendor
    name; the other columns follow the export layout. Names that already
    exist are skipped, so importing an export is idempotent.

    Args:
        db: Database session
        org_id: Organization receiving the vendors
        file_bytes: Raw CSV file bytes

    Returns:
        VendorImportResult with counts and per-row errors
    """
    reader = csv.reader(StringIO(_decode(file_bytes)))
    rows: List[List[str]] = [row for row in reader if any(cell.strip() for cell in row)]

    result = VendorImportResult(total_rows=0, imported_count=0, skipped_count=0, error_count=0, errors=[])
    if not rows:
        return result

    header = [_normalize_header(cell) for cell in rows[0]]
    has_header = header[0] in ("vendor", "name", "vendor_name")
    if has_header:
        rows = rows[1:]
    else:
        header = ["vendor"]

    seen = set()
    for row_num, row in enumerate(rows, start=2 if has_header else 1):
        result.total_rows += 1
        values = dict(zip(header, (cell.strip() for cell in row)))
        name = row[0].strip()

        if not name:
            result.error_count += 1
            result.errors.append(VendorImportError(row=row_num, name=None, error="Vendor name is required"))
            continue

        if name.lower() in seen or find_by_name(db, org_id, name):
            result.skipped_count += 1
            continue

        status_value = (values.get("status") or "active").lower()
        if status_value not in ("active", "inactive"):
            result.error_count += 1
            result.errors.append(VendorImportError(row=row_num, name=name, error=f"Invalid status: {status_value}"))
            continue

        vendor = Vendor(org_id=org_id, name=name, status=status_value)
        for column, field in _IMPORT_FIELDS.items():
            setattr(vendor, field, values.get(column) or None)
        specialties = values.get("specialties")
        if specialties:
            vendor.specialties = [part.strip() for part in specialties.split(";") if part.strip()]

        db.add(vendor)
        seen.add(name.lower())
        result.imported_count += 1

    db.flush()
    logger.info(
        f"Vendor import for org {org_id}: {result.imported_count} imported, "
        f"{result.skipped_count} skipped, {result.error_count} errors"
    )
    return result
