"""Contract parsing and stored contract endpoints.

parse_router holds the stateless parsing endpoints (EML upload, link
extraction, addendum pages). router holds the stored contracts under
/contracts.
"""

import base64
import binascii
import logging
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.orm import Session, joinedload, selectinload

from ..database import get_db
from ..dependencies import TenantQuery
from ..auth.dependencies import ContractEditor, StaffUser
from ..auth.permissions import contract_filter
from ..models.order import Order
from ..models.user import User
from ..observability.metrics import contract_items_extracted, contracts_parsed_total
from ..parsing import (
    AddendumFetchError,
    ContractParseError,
    ParsedEmail,
    detect_eml_sections,
    extract_addendum_number,
    extract_contract_links,
    extract_location,
    extract_order_items,
    fetch_addendum_html,
    fetch_and_parse_addendums,
    generate_spreadsheet,
    generate_spreadsheet_filename,
    parse_eml,
    validate_addendum_url,
    validate_order_items_total,
)
from . import service
from .schemas import (
    AddendumParseRequest,
    ContractUpdate,
    EmlFileRequest,
    ParseContractJsonRequest,
    ParseContractRequest,
    StoredContractIn,
    ValidateLinkRequest,
)

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

parse_router = APIRouter(tags=["Contract Parsing"])
router = APIRouter(prefix="/contracts", tags=["Contracts"])


def _read_eml(encoded: str) -> ParsedEmail:
    """Decode the base64 upload and parse it.

    Raises:
        HTTPException 400: Content is not base64 or decodes to nothing
        HTTPException 422: The EML cannot be parsed
    """
    try:
        content = base64.b64decode(encoded, validate=False)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be base64 encoded")

    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded or file is empty")

    try:
        return parse_eml(content)
    except ContractParseError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Failed to process contract: {e}",
        )


def _extract_contract(parsed: ParsedEmail):
    """Location and order items of a parsed EML.

    Raises:
        HTTPException 422: The contract tables cannot be read
    """
    try:
        location = extract_location(parsed.text)
        items = extract_order_items(parsed.html)
    except ContractParseError as e:
        contracts_parsed_total.labels(source="eml", status="error").inc()
        logger.warning(f"Contract parsing failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Failed to process contract: {e}",
        )

    contracts_parsed_total.labels(source="eml", status="success").inc()
    contract_items_extracted.labels(source="eml").observe(len(items))
    return location, items


def xlsx_response(content: bytes, filename: str) -> Response:
    """Attachment response carrying both a plain and an RFC 5987 filename."""
    fallback = filename.encode("ascii", "ignore").decode("ascii").replace('"', "")
    disposition = f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": disposition,
            "X-Content-Type-Options": "nosniff",
        },
    )


@parse_router.post("/parse-contract")
def parse_contract(data: ParseContractRequest, current_user: StaffUser):
    """Parse an EML contract and return the order items spreadsheet."""
    parsed = _read_eml(data.file)
    location, items = _extract_contract(parsed)

    content = generate_spreadsheet(items, location, apply_formatting=data.apply_formatting)
    return xlsx_response(content, generate_spreadsheet_filename(location))


@parse_router.post("/parse-contract/json")
def parse_contract_json(data: ParseContractJsonRequest, current_user: StaffUser):
    """Parse an EML contract into location, items, links and total validation."""
    parsed = _read_eml(data.file)
    location, items = _extract_contract(parsed)

    return {
        "location": location.to_dict(),
        "items": [item.to_dict() for item in items],
        "links": extract_contract_links(parsed).to_dict(),
        "validation": validate_order_items_total(items, data.order_grand_total).to_dict(),
        "filename": generate_spreadsheet_filename(location),
    }


@parse_router.post("/detect-eml-sections")
def detect_sections(data: EmlFileRequest, current_user: StaffUser):
    parsed = _read_eml(data.file)
    sections, has_table = detect_eml_sections(parsed)
    return {"sections": [section.to_dict() for section in sections], "has_table": has_table}


@parse_router.post("/extract-contract-links")
def extract_links(data: EmlFileRequest, current_user: StaffUser):
    parsed = _read_eml(data.file)
    return extract_contract_links(parsed).to_dict()


@parse_router.post("/extract-dbx-customer-id")
def extract_dbx_customer_id(data: EmlFileRequest, current_user: StaffUser):
    """ProDBX customer id and client name from the contract text, or nulls."""
    parsed = _read_eml(data.file)
    if not parsed.text or not parsed.text.strip():
        return {"dbx_customer_id": None, "client_name": None}

    location = extract_location(parsed.text)
    return {
        "dbx_customer_id": location.dbx_customer_id or None,
        "client_name": location.client_name or None,
    }


@parse_router.post("/validate-link")
def validate_link(data: ValidateLinkRequest, current_user: StaffUser):
    """Check that an addendum link has the ProDBX format and can be fetched.

    Invalid links are reported with valid=false rather than an error status.
    """
    url = data.url.strip()
    if not validate_addendum_url(url):
        return {
            "valid": False,
            "error": "Invalid URL format. Expected format: https://l1.prodbx.com/go/view/?...",
        }

    try:
        fetch_addendum_html(url)
    except AddendumFetchError as e:
        return {"valid": False, "error": str(e)}

    return {"valid": True, "addendum_number": extract_addendum_number(url)}


@parse_router.post("/addendums/parse")
def parse_addendums(data: AddendumParseRequest, current_user: StaffUser):
    """Fetch and parse addendum pages.

    Raises:
        HTTPException 502: No addendum could be fetched and parsed
    """
    try:
        addendums = fetch_and_parse_addendums([url.strip() for url in data.urls])
    except AddendumFetchError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return {"addendums": [addendum.to_dict() for addendum in addendums]}


def _get_order(db: Session, order_id, user: User) -> Order:
    """Order of the user's organization that the user may see, or 404."""
    query = (
        TenantQuery.scoped_query(db, Order, user.org_id)
        .options(joinedload(Order.customer), selectinload(Order.items))
        .filter(Order.id == order_id)
    )
    predicate = contract_filter(user)
    if predicate is not None:
        query = query.filter(predicate)

    order = query.first()
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contract not found")
    return order


@router.post("", status_code=status.HTTP_201_CREATED)
def store_contract(data: StoredContractIn, current_user: ContractEditor, db: Session = Depends(get_db)):
    """Store a parsed contract, creating or updating customer and order.

    Raises:
        HTTPException 400: Customer, order, items or dbx_customer_id missing
    """
    try:
        order, is_new = service.save_contract(db, current_user, data)
    except service.ContractStoreError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    db.commit()
    db.refresh(order)
    return {"contract": service.stored_contract(order), "created": is_new}


@router.get("")
def list_contracts(current_user: StaffUser, db: Session = Depends(get_db)):
    """All stored contracts, latest first, including those of trashed customers."""
    query = (
        TenantQuery.scoped_query(db, Order, current_user.org_id)
        .options(joinedload(Order.customer), selectinload(Order.items))
    )
    predicate = contract_filter(current_user)
    if predicate is not None:
        query = query.filter(predicate)

    orders = query.order_by(Order.created_at.desc()).all()
    return {"contracts": [service.stored_contract(order) for order in orders]}


@router.get("/{order_id}")
def get_contract(order_id: UUID, current_user: StaffUser, db: Session = Depends(get_db)):
    return {"contract": service.stored_contract(_get_order(db, order_id, current_user))}


@router.put("/{order_id}")
def update_contract(
    order_id: UUID,
    data: ContractUpdate,
    current_user: ContractEditor,
    db: Session = Depends(get_db),
):
    """Update customer and order fields of a stored contract."""
    order = _get_order(db, order_id, current_user)
    service.update_contract(db, current_user, order, data)
    db.commit()
    db.refresh(order)
    return {"contract": service.stored_contract(order)}


@router.get("/{order_id}/spreadsheet")
def download_contract_spreadsheet(order_id: UUID, current_user: StaffUser, db: Session = Depends(get_db)):
    """Regenerate the order items spreadsheet from the stored rows."""
    order = _get_order(db, order_id, current_user)
    location = service.location_for_order(order)
    content = generate_spreadsheet([item.to_dict() for item in order.items], location)
    return xlsx_response(content, generate_spreadsheet_filename(location))

