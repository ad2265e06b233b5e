from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from lending.database import get_db
from lending.models.book_request import BookRequestStatus
from lending.models.user import User
from lending.services.auth import get_current_user
from lending.services import book_requests
from lending.schemas.book_request import (
    BookRequestCreate,
    BookRequestCreatedResponse,
    BookRequestListResponse,
    BookRequestResponse,
)

router = APIRouter(prefix="/api/requests", tags=["Book Requests"])

@router.get("/me", response_model=BookRequestListResponse)
async def get_my_book_requests(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get book requests submitted by current user, newest first."""
    requests = book_requests.list_requests_for_user(db, current_user.user_id)
    return BookRequestListResponse(
        requests=[BookRequestResponse.model_validate(request.to_dict()) for request in requests]
    )

@router.post("/", response_model=BookRequestCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_book_request(
    request: BookRequestCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Ask the library to acquire a book, by ISBN or by title and author."""
    created = book_requests.create_book_request(
        db,
        current_user.user_id,
        title=request.title,
        author=request.author,
        isbn=request.isbn,
        note=request.note,
    )
    already_available = created.status == BookRequestStatus.FULFILLED_AUTO.value
    return BookRequestCreatedResponse(
        message=(
            "Request submitted and marked as available"
            if already_available
            else "Book request submitted successfully"
        ),
        request=BookRequestResponse.model_validate(created.to_dict()),
    )
