from pydantic import BaseModel, Field
from typing import Optional

class BookBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    author: Optional[str] = Field(None, max_length=255)
    isbn: Optional[str] = Field(None, max_length=20)
    isbn10: Optional[str] = Field(None, max_length=20)
    isbn13: Optional[str] = Field(None, max_length=20)
    publish_year: Optional[int] = None
    description: Optional[str] = None
    available_copies: int = Field(1, ge=0)

class BookCreate(BookBase):
    pass

class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    author: Optional[str] = Field(None, max_length=255)
    isbn: Optional[str] = Field(None, max_length=20)
    isbn10: Optional[str] = Field(None, max_length=20)
    isbn13: Optional[str] = Field(None, max_length=20)
    publish_year: Optional[int] = None
    description: Optional[str] = None
    available_copies: Optional[int] = Field(None, ge=0)

class BookResponse(BaseModel):
    id: str
    title: str
    author: Optional[str] = None
    isbn: Optional[str] = None
    isbn10: Optional[str] = None
    isbn13: Optional[str] = None
    publishYear: Optional[int] = None
    description: Optional[str] = None
    availableCopies: int

    class Config:
        from_attributes = True
