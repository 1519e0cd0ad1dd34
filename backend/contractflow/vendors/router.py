"""Vendor directory endpoints"""

import logging
import math
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..database import get_db
from ..dependencies import TenantQuery
from ..auth.dependencies import ContractEditor, StaffUser
from ..models.base import utcnow
from ..models.order_approval import OrderApproval
from ..models.vendor import Vendor
from . import service
from .schemas import (
    Pagination,
    VendorCreate,
    VendorImportResult,
    VendorListResponse,
    VendorResponse,
    VendorUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vendors", tags=["vendors"])

MAX_IMPORT_BYTES = 5 * 1024 * 1024


def _get_vendor(db: Session, vendor_id: UUID, org_id: UUID) -> Vendor:
    return TenantQuery.get_or_404(db, Vendor, vendor_id, org_id, detail="Vendor not found")


@router.get("", response_model=VendorListResponse)
def list_vendors(
    current_user: StaffUser,
    db: Session = Depends(get_db),
    search: Optional[str] = Query(None, description="Matches name, email or phone"),
    status_filter: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = Query(None),
    trash: bool = Query(False, description="Only vendors in the trash"),
    include_deleted: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
):
    """List vendors sorted by name.

    Without a status filter only active vendors are listed, unless the
    trash or deleted vendors are requested; status=all lists every status.
    """
    query = TenantQuery.scoped_query(db, Vendor, current_user.org_id)

    if trash:
        query = query.filter(Vendor.deleted_at.isnot(None))
    elif not include_deleted:
        query = query.filter(Vendor.deleted_at.is_(None))

    if status_filter and status_filter != "all":
        query = query.filter(Vendor.status == status_filter)
    elif not status_filter and not trash and not include_deleted:
        query = query.filter(Vendor.status == "active")

    if category and category != "all":
        query = query.filter(Vendor.category == category)

    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Vendor.name.ilike(pattern),
            Vendor.email.ilike(pattern),
            Vendor.phone.ilike(pattern),
        ))

    total = query.count()
    vendors = (
        query.order_by(Vendor.name)
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    return VendorListResponse(
        vendors=vendors,
        pagination=Pagination(
            page=page,
            page_size=page_size,
            total=total,
            total_pages=math.ceil(total / page_size),
        ),
    )


@router.post("", response_model=VendorResponse, status_code=status.HTTP_201_CREATED)
def create_vendor(data: VendorCreate, current_user: ContractEditor, db: Session = Depends(get_db)):
    """Create a vendor.

    Raises:
        HTTPException 409: A vendor with this name already exists
    """
    if service.find_by_name(db, current_user.org_id, data.name):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Vendor with this name already exists")

    vendor = Vendor(org_id=current_user.org_id, **data.model_dump())
    db.add(vendor)
    db.commit()
    db.refresh(vendor)

    logger.info(f"Vendor {vendor.name} created by {current_user.username}")
    return vendor


@router.get("/export")
def export_vendors(
    current_user: StaffUser,
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = Query(None),
    include_deleted: bool = Query(False),
):
    """Download vendors as CSV."""
    query = TenantQuery.scoped_query(db, Vendor, current_user.org_id)
    if not include_deleted:
        query = query.filter(Vendor.deleted_at.is_(None))
    if status_filter and status_filter != "all":
        query = query.filter(Vendor.status == status_filter)
    if category and category != "all":
        query = query.filter(Vendor.category == category)

    content = service.export_csv(query.order_by(Vendor.name).all())
    filename = f"vendors-export-{date.today().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import", response_model=VendorImportResult)
async def import_vendors(
    current_user: ContractEditor,
    file: UploadFile = File(..., description="CSV file with vendors"),
    db: Session = Depends(get_db),
):
    """Create vendors from a CSV file; existing names are skipped.

    Raises:
        HTTPException 400: Not a CSV file, empty or too large
    """
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be a CSV file")

    file_bytes = await file.read()
    if not file_bytes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV file is empty")
    if len(file_bytes) > MAX_IMPORT_BYTES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV file is too large")

    result = service.import_csv(db, current_user.org_id, file_bytes)
    db.commit()
    return result


@router.get("/{vendor_id}", response_model=VendorResponse)
def get_vendor(vendor_id: UUID, current_user: StaffUser, db: Session = Depends(get_db)):
    return _get_vendor(db, vendor_id, current_user.org_id)


@router.patch("/{vendor_id}", response_model=VendorResponse)
def update_vendor(
    vendor_id: UUID,
    data: VendorUpdate,
    current_user: ContractEditor,
    db: Session = Depends(get_db),
):
    """Update vendor fields.

    Raises:
        HTTPException 409: Renaming to a name another vendor already has
    """
    vendor = _get_vendor(db, vendor_id, current_user.org_id)
    changes = data.model_dump(exclude_unset=True)

    name = changes.pop("name", None)
    if name and name != vendor.name:
        if service.find_by_name(db, current_user.org_id, name, exclude_id=vendor.id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Vendor with this name already exists")
        vendor.name = name

    if changes.get("status") is None:
        changes.pop("status", None)

    for field, value in changes.items():
        setattr(vendor, field, value)
    vendor.updated_at = utcnow()

    db.commit()
    db.refresh(vendor)
    return vendor


@router.delete("/{vendor_id}")
def delete_vendor(vendor_id: UUID, current_user: ContractEditor, db: Session = Depends(get_db)):
    """Move a vendor to the trash."""
    vendor = _get_vendor(db, vendor_id, current_user.org_id)
    if vendor.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Vendor is already deleted")

    vendor.deleted_at = utcnow()
    vendor.updated_at = utcnow()
    db.commit()

    logger.info(f"Vendor {vendor.name} moved to trash by {current_user.username}")
    return {"success": True, "message": "Vendor deleted successfully"}


@router.post("/{vendor_id}/restore", response_model=VendorResponse)
def restore_vendor(vendor_id: UUID, current_user: ContractEditor, db: Session = Depends(get_db)):
    vendor = _get_vendor(db, vendor_id, current_user.org_id)
    if vendor.deleted_at is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Vendor is not in trash")

    vendor.deleted_at = None
    vendor.updated_at = utcnow()
    db.commit()
    db.refresh(vendor)
    return vendor


@router.get("/{vendor_id}/projects")
def list_vendor_projects(
    vendor_id: UUID,
    current_user: StaffUser,
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
):
    """Order approvals negotiated with the vendor, latest first.

    Approvals of trashed customers or deleted approvals are left out.
    """
    vendor = _get_vendor(db, vendor_id, current_user.org_id)

    query = (
        TenantQuery.scoped_query(db, OrderApproval, current_user.org_id)
        .options(
            joinedload(OrderApproval.customer),
            joinedload(OrderApproval.order),
            joinedload(OrderApproval.items),
        )
        .filter(OrderApproval.vendor_id == vendor.id, OrderApproval.deleted_at.is_(None))
        .order_by(OrderApproval.date_created.desc())
    )
    approvals = [a for a in query.all() if a.customer is not None and not a.customer.is_deleted]

    total = len(approvals)
    start = (page - 1) * page_size
    projects = []
    for approval in approvals[start:start + page_size]:
        order = approval.order
        projects.append({
            "order_approval_id": str(approval.id),
            "reference_no": approval.reference_no,
            "stage": approval.stage,
            "date_created": approval.date_created.isoformat() if approval.date_created else None,
            "customer": {
                "id": str(approval.customer.id),
                "dbx_customer_id": approval.customer.dbx_customer_id,
                "client_name": approval.customer.client_name,
            },
            "order": {"id": str(order.id), "order_no": order.order_no} if order else None,
            "item_count": len(approval.items),
            "total_amount": sum(float(item.amount or 0) for item in approval.items),
            "total_negotiated": sum(float(item.negotiated_vendor_amount or 0) for item in approval.items),
        })

    return {
        "vendor": {"id": str(vendor.id), "name": vendor.name},
        "projects": projects,
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": math.ceil(total / page_size),
        },
    }
