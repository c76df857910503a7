from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal


class Bundle(SQLModel, table=True):
    __tablename__ = "bundles"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    price: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class BundleBook(SQLModel, table=True):
    __tablename__ = "bundle_books"

    bundle_id: int = Field(foreign_key="bundles.id", primary_key=True)
    book_id: int = Field(foreign_key="books.id", primary_key=True)
