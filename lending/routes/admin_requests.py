from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional
from lending.database import get_db
from lending.models.user import User
from lending.services.auth import require_admin
from lending.services import book_requests
from lending.services.request_matching import auto_fulfill_requests_for_book
from lending.schemas.book_request import (
    AutoFulfillResponse,
    BookRequestListResponse,
    BookRequestResponse,
    ManualFulfillRequest,
    ManualFulfillResponse,
    RequestAnalyticsResponse,
)

router = APIRouter(prefix="/api/admin/requests", tags=["Admin Book Requests"])

@router.get("/", response_model=BookRequestListResponse)
async def get_all_book_requests(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    requests = book_requests.list_all_requests(db)
    return BookRequestListResponse(
        requests=[BookRequestResponse.model_validate(request.to_dict()) for request in requests]
    )

@router.get("/analytics", response_model=RequestAnalyticsResponse)
async def get_book_request_analytics(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Most requested books with open/fulfilled counts."""
    return RequestAnalyticsResponse(items=book_requests.request_analytics(db))

@router.post("/{request_id}/fulfill", response_model=ManualFulfillResponse)
async def mark_request_fulfilled_manually(
    request_id: int,
    request: Optional[ManualFulfillRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    fulfilled = book_requests.mark_request_fulfilled_manually(
        db,
        request_id,
        admin.user_id,
        book_id=request.bookId if request else None,
        note=request.note if request else None,
    )
    return ManualFulfillResponse(
        message="Request marked as fulfilled manually",
        request=BookRequestResponse.model_validate(fulfilled.to_dict()),
    )

@router.post("/fulfill-by-book/{book_id}", response_model=AutoFulfillResponse)
async def auto_fulfill_requests_by_book(
    book_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Close every open request the given book satisfies."""
    if book_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid book id"
        )

    fulfilled_count = auto_fulfill_requests_for_book(db, book_id)
    return AutoFulfillResponse(message="Matching open requests processed", fulfilledCount=fulfilled_count)
