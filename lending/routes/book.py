from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from sqlalchemy import or_
from lending.database import get_db
from lending.models.book import Book
from lending.models.user import User
from lending.services.auth import require_admin
from lending.services import catalog_service
from lending.schemas.book import BookResponse, BookCreate, BookUpdate

router = APIRouter(prefix="/api/library", tags=["Library Books"])
admin_router = APIRouter(prefix="/api/admin/books", tags=["Admin Books"])

@router.get("/books", response_model=List[BookResponse])
async def get_books(
    search: Optional[str] = Query(None, description="Search by title, author, or ISBN"),
    available: Optional[bool] = Query(None, description="Only books with copies on the shelf"),
    db: Session = Depends(get_db)
):
    """Get list of books with optional search and filter."""
    query = db.query(Book)

    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                Book.title.ilike(search_term),
                Book.author.ilike(search_term),
                Book.isbn.ilike(search_term),
                Book.isbn10.ilike(search_term),
                Book.isbn13.ilike(search_term)
            )
        )

    if available:
        query = query.filter(Book.available_copies > 0)

    books = query.order_by(Book.title).all()
    return [BookResponse.model_validate(book.to_dict()) for book in books]

@router.get("/books/{book_id}", response_model=BookResponse)
async def get_book(book_id: int, db: Session = Depends(get_db)):
    """Get book details by ID."""
    book = db.query(Book).filter(Book.book_id == book_id).first()
    if not book:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )
    return BookResponse.model_validate(book.to_dict())

@admin_router.post("/", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    request: BookCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Add a book to the catalog. Matching open requests are fulfilled."""
    book = catalog_service.create_book(db, **request.model_dump())
    return BookResponse.model_validate(book.to_dict())

@admin_router.patch("/{book_id}", response_model=BookResponse)
async def update_book(
    book_id: int,
    request: BookUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Update catalog fields or stock. Restocking fulfils matching open requests."""
    book = catalog_service.update_book(db, book_id, **request.model_dump(exclude_unset=True))
    return BookResponse.model_validate(book.to_dict())
