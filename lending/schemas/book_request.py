from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

class BookRequestCreate(BaseModel):
    """Either isbn, or both title and author."""
    title: Optional[str] = Field(None, max_length=255)
    author: Optional[str] = Field(None, max_length=255)
    isbn: Optional[str] = Field(None, max_length=32)
    note: Optional[str] = None

class ManualFulfillRequest(BaseModel):
    bookId: Optional[int] = Field(None, gt=0)
    note: Optional[str] = None

class BookRequestResponse(BaseModel):
    id: str
    requestedByUserId: str
    requestedTitle: Optional[str] = None
    requestedAuthor: Optional[str] = None
    requestedIsbn: Optional[str] = None
    normalizedTitle: Optional[str] = None
    normalizedAuthor: Optional[str] = None
    normalizedIsbn: Optional[str] = None
    requestKey: str
    note: Optional[str] = None
    status: str
    matchedBookId: Optional[str] = None
    matchedBookTitle: Optional[str] = None
    fulfilledAt: Optional[datetime] = None
    fulfilledByUserId: Optional[str] = None
    fulfillmentNote: Optional[str] = None
    createdAt: Optional[datetime] = None
    requestedByName: Optional[str] = None
    requestedByEmail: Optional[str] = None

    class Config:
        from_attributes = True

class BookRequestCreatedResponse(BaseModel):
    message: str
    request: BookRequestResponse

class BookRequestListResponse(BaseModel):
    requests: List[BookRequestResponse]

class RequestAnalyticsItem(BaseModel):
    requestKey: str
    label: str
    requestedTitle: Optional[str] = None
    requestedAuthor: Optional[str] = None
    requestedIsbn: Optional[str] = None
    totalRequests: int
    openRequests: int
    fulfilledRequests: int

class RequestAnalyticsResponse(BaseModel):
    items: List[RequestAnalyticsItem]

class AutoFulfillResponse(BaseModel):
    message: str
    fulfilledCount: int

class ManualFulfillResponse(BaseModel):
    message: str
    request: BookRequestResponse
