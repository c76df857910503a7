from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class LibraryStatus(str, Enum):
    owned = "owned"
    reading = "reading"
    completed = "completed"


class LibraryEntry(SQLModel, table=True):
    """A book in a buyer's library, carrying reading progress."""
    __tablename__ = "user_library"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    book_id: int = Field(foreign_key="books.id", index=True)

    status: LibraryStatus = LibraryStatus.owned
    progress: int = 0
    last_read_position: Optional[str] = None

    added_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
