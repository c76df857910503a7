import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from fulfillment.models.book import Book
from fulfillment.models.bundle import Bundle, BundleBook
from fulfillment.utils.result import ErrorCode, Result, failure, success

logger = logging.getLogger(__name__)

SORTABLE = {"created_at", "price", "title"}


@dataclass(frozen=True)
class CatalogQuery:
    query: Optional[str] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    limit: int = 20
    offset: int = 0
    sort: str = "created_at"

    @property
    def has_search(self) -> bool:
        return bool(self.query)

    @property
    def has_price_range(self) -> bool:
        return self.min_price is not None or self.max_price is not None

    def as_key(self) -> tuple:
        return tuple(sorted(asdict(self).items()))


def book_to_dict(book: Book) -> dict:
    return {
        "id": book.id,
        "title": book.title,
        "author": book.author,
        "price": book.price,
        "is_free": book.is_free,
        "created_at": book.created_at,
        "updated_at": book.updated_at,
    }


def bundle_to_dict(bundle: Bundle) -> dict:
    return {
        "id": bundle.id,
        "title": bundle.title,
        "price": bundle.price,
        "created_at": bundle.created_at,
        "updated_at": bundle.updated_at,
    }


class CatalogRepository:
    """
    Book and bundle reads/writes used by the purchase flows.

    Each call runs in its own short session and hands back plain dicts, so
    results are safe to keep after the session is gone.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _store_error(self, operation: str, exc: Exception) -> Result:
        logger.exception(f"Catalog repository {operation} failed")
        return failure(f"Failed to {operation}: {exc}", ErrorCode.DATABASE_ERROR)

    @staticmethod
    def _filtered(model, query: CatalogQuery, statement):
        if query.query:
            like = f"%{query.query}%"
            if model is Book:
                statement = statement.where(or_(Book.title.ilike(like), Book.author.ilike(like)))
            else:
                statement = statement.where(Bundle.title.ilike(like))
        if query.min_price is not None:
            statement = statement.where(model.price >= query.min_price)
        if query.max_price is not None:
            statement = statement.where(model.price <= query.max_price)
        return statement

    # -------------------------
    # BOOKS
    # -------------------------

    def get_book(self, book_id: int) -> Result:
        try:
            with self._session_factory() as session:
                book = session.get(Book, book_id)
                if book is None:
                    return failure("Book not found", ErrorCode.NOT_FOUND)
                return success(book_to_dict(book))
        except SQLAlchemyError as exc:
            return self._store_error(f"fetch book {book_id}", exc)

    def list_books(self, query: CatalogQuery = CatalogQuery()) -> Result:
        sort = query.sort if query.sort in SORTABLE else "created_at"
        statement = self._filtered(Book, query, select(Book))
        statement = statement.order_by(getattr(Book, sort).desc(), Book.id.desc())
        try:
            with self._session_factory() as session:
                books = session.exec(statement.offset(query.offset).limit(query.limit)).all()
                return success([book_to_dict(b) for b in books])
        except SQLAlchemyError as exc:
            return self._store_error("list books", exc)

    def count_books(self, query: CatalogQuery = CatalogQuery()) -> Result:
        statement = self._filtered(Book, query, select(func.count(Book.id)))
        try:
            with self._session_factory() as session:
                return success(session.exec(statement).one())
        except SQLAlchemyError as exc:
            return self._store_error("count books", exc)

    def create_book(self, data: dict) -> Result:
        try:
            with self._session_factory() as session:
                book = Book(**data)
                session.add(book)
                session.commit()
                session.refresh(book)
                return success(book_to_dict(book))
        except SQLAlchemyError as exc:
            return self._store_error("create book", exc)

    def update_book(self, book_id: int, updates: dict) -> Result:
        try:
            with self._session_factory() as session:
                book = session.get(Book, book_id)
                if book is None:
                    return failure("Book not found", ErrorCode.NOT_FOUND)
                for key, value in updates.items():
                    setattr(book, key, value)
                book.updated_at = datetime.utcnow()
                session.add(book)
                session.commit()
                session.refresh(book)
                return success(book_to_dict(book))
        except SQLAlchemyError as exc:
            return self._store_error(f"update book {book_id}", exc)

    def delete_book(self, book_id: int) -> Result:
        try:
            with self._session_factory() as session:
                book = session.get(Book, book_id)
                if book is None:
                    return failure("Book not found", ErrorCode.NOT_FOUND)
                session.delete(book)
                session.commit()
                return success(True)
        except SQLAlchemyError as exc:
            return self._store_error(f"delete book {book_id}", exc)

    # -------------------------
    # BUNDLES
    # -------------------------

    def get_bundle(self, bundle_id: int) -> Result:
        try:
            with self._session_factory() as session:
                bundle = session.get(Bundle, bundle_id)
                if bundle is None:
                    return failure("Bundle not found", ErrorCode.NOT_FOUND)
                return success(bundle_to_dict(bundle))
        except SQLAlchemyError as exc:
            return self._store_error(f"fetch bundle {bundle_id}", exc)

    def get_bundle_books(self, bundle_id: int) -> Result:
        try:
            with self._session_factory() as session:
                books = session.exec(
                    select(Book)
                    .join(BundleBook, BundleBook.book_id == Book.id)
                    .where(BundleBook.bundle_id == bundle_id)
                    .order_by(Book.id)
                ).all()
                return success([book_to_dict(b) for b in books])
        except SQLAlchemyError as exc:
            return self._store_error(f"fetch books of bundle {bundle_id}", exc)

    def list_bundles(self, query: CatalogQuery = CatalogQuery()) -> Result:
        sort = query.sort if query.sort in SORTABLE else "created_at"
        statement = self._filtered(Bundle, query, select(Bundle))
        statement = statement.order_by(getattr(Bundle, sort).desc(), Bundle.id.desc())
        try:
            with self._session_factory() as session:
                bundles = session.exec(statement.offset(query.offset).limit(query.limit)).all()
                return success([bundle_to_dict(b) for b in bundles])
        except SQLAlchemyError as exc:
            return self._store_error("list bundles", exc)

    def count_bundles(self, query: CatalogQuery = CatalogQuery()) -> Result:
        statement = self._filtered(Bundle, query, select(func.count(Bundle.id)))
        try:
            with self._session_factory() as session:
                return success(session.exec(statement).one())
        except SQLAlchemyError as exc:
            return self._store_error("count bundles", exc)

    def create_bundle(self, data: dict, book_ids=()) -> Result:
        try:
            with self._session_factory() as session:
                bundle = Bundle(**data)
                session.add(bundle)
                session.flush()
                for book_id in book_ids:
                    session.add(BundleBook(bundle_id=bundle.id, book_id=book_id))
                session.commit()
                session.refresh(bundle)
                return success(bundle_to_dict(bundle))
        except SQLAlchemyError as exc:
            return self._store_error("create bundle", exc)

    def update_bundle(self, bundle_id: int, updates: dict) -> Result:
        try:
            with self._session_factory() as session:
                bundle = session.get(Bundle, bundle_id)
                if bundle is None:
                    return failure("Bundle not found", ErrorCode.NOT_FOUND)
                for key, value in updates.items():
                    setattr(bundle, key, value)
                bundle.updated_at = datetime.utcnow()
                session.add(bundle)
                session.commit()
                session.refresh(bundle)
                return success(bundle_to_dict(bundle))
        except SQLAlchemyError as exc:
            return self._store_error(f"update bundle {bundle_id}", exc)

    def set_bundle_books(self, bundle_id: int, book_ids) -> Result:
        try:
            with self._session_factory() as session:
                if session.get(Bundle, bundle_id) is None:
                    return failure("Bundle not found", ErrorCode.NOT_FOUND)
                for link in session.exec(select(BundleBook).where(BundleBook.bundle_id == bundle_id)).all():
                    session.delete(link)
                for book_id in book_ids:
                    session.add(BundleBook(bundle_id=bundle_id, book_id=book_id))
                session.commit()
                return success(None)
        except SQLAlchemyError as exc:
            return self._store_error(f"set books of bundle {bundle_id}", exc)

    def delete_bundle(self, bundle_id: int) -> Result:
        try:
            with self._session_factory() as session:
                bundle = session.get(Bundle, bundle_id)
                if bundle is None:
                    return failure("Bundle not found", ErrorCode.NOT_FOUND)
                for link in session.exec(select(BundleBook).where(BundleBook.bundle_id == bundle_id)).all():
                    session.delete(link)
                session.delete(bundle)
                session.commit()
                return success(True)
        except SQLAlchemyError as exc:
            return self._store_error(f"delete bundle {bundle_id}", exc)

    # -------------------------
    # ITEMS
    # -------------------------

    def get_item(self, item_type, item_id: int) -> Result:
        """Book or bundle by type; the shape purchase flows price against."""
        item_type = getattr(item_type, "value", item_type)
        if item_type == "book":
            return self.get_book(item_id)
        if item_type == "bundle":
            return self.get_bundle(item_id)
        return failure(f"Unknown item type: {item_type}", ErrorCode.VALIDATION_ERROR)
