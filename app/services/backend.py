"""
Data backend collaborators.

Everything above this layer talks to a ``Backend``: query/insert/update/delete
over named collections, with failures raised as ``BackendError`` carrying a
PostgREST/Postgres error code. Two implementations exist:

- SQLModelBackend: a relational database through SQLModel (default)
- RestBackend (app.services.rest_backend): a hosted PostgREST API over httpx

Rows are plain dicts in both, with datetimes rendered as ISO strings.
"""

import functools
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, List, Optional, Protocol, Sequence, Tuple, Type

import anyio
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlmodel import Session, SQLModel, select

from app.core.errors import (
    BackendError,
    NOT_FOUND,
    DUPLICATE,
    FOREIGN_KEY_VIOLATION,
    UNDEFINED_COLUMN,
)
from app.core.logging_config import get_logger
from app.core.typing import col, to_jsonable, utc_now
from app.models.agency import Agency
from app.models.review import Review

logger = get_logger(__name__)

Filters = Dict[str, Any]
Ordering = Sequence[Tuple[str, str]]  # [("created_at", "desc"), ...]

UNDEFINED_TABLE = "42P01"


class Backend(Protocol):
    async def query(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        ordering: Optional[Ordering] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]: ...

    async def get(self, collection: str, id: str) -> Dict[str, Any]: ...

    async def insert(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]: ...

    async def update(self, collection: str, id: str, patch: Dict[str, Any]) -> Dict[str, Any]: ...

    async def delete(self, collection: str, id: str) -> bool: ...


@dataclass
class BackendResponse:
    """Envelope form of a backend result: exactly one of data/error is set."""

    data: Any = None
    error: Optional[BaseException] = None


async def as_response(call: Awaitable[Any]) -> BackendResponse:
    """Await a backend call, turning any failure into an error envelope."""
    try:
        return BackendResponse(data=await call)
    except Exception as e:
        return BackendResponse(error=e)


# Collection name -> table model
COLLECTIONS: Dict[str, Type[SQLModel]] = {
    "agencies": Agency,
    "reviews": Review,
}


def _integrity_error(exc: IntegrityError) -> BackendError:
    orig = exc.orig
    message = str(orig) if orig is not None else str(exc)
    pgcode = getattr(orig, "pgcode", None)
    if pgcode:
        return BackendError(message, code=pgcode)
    if "foreign key" in message.lower():
        return BackendError(message, code=FOREIGN_KEY_VIOLATION)
    return BackendError(message, code=DUPLICATE)


class SQLModelBackend:
    """Backend over a SQLAlchemy engine, one short-lived session per call."""

    def __init__(self, engine, collections: Optional[Dict[str, Type[SQLModel]]] = None):
        self.engine = engine
        self.collections = collections or COLLECTIONS

    def _model(self, collection: str) -> Type[SQLModel]:
        model = self.collections.get(collection)
        if model is None:
            raise BackendError(f'relation "{collection}" does not exist', code=UNDEFINED_TABLE)
        return model

    @staticmethod
    def _check_columns(model: Type[SQLModel], names) -> None:
        columns = model.__table__.columns.keys()  # type: ignore[attr-defined]
        for name in names:
            if name not in columns:
                raise BackendError(f'column "{name}" does not exist', code=UNDEFINED_COLUMN)

    @staticmethod
    def _to_row(obj: SQLModel) -> Dict[str, Any]:
        return {key: to_jsonable(value) for key, value in obj.model_dump().items()}

    async def _run(self, operation):
        # Sessions block; keep them off the event loop
        return await anyio.to_thread.run_sync(self._run_in_session, operation)

    def _run_in_session(self, operation):
        with Session(self.engine) as session:
            try:
                return operation(session)
            except IntegrityError as e:
                session.rollback()
                raise _integrity_error(e) from e
            except DBAPIError as e:
                session.rollback()
                # Keep the driver message so transient failures classify as retryable
                raise BackendError(str(e.orig) if e.orig is not None else str(e)) from e

    def _get_or_raise(self, session: Session, model: Type[SQLModel], id: str) -> SQLModel:
        obj = session.get(model, id)
        if obj is None:
            raise BackendError(
                "JSON object requested, multiple (or no) rows returned",
                code=NOT_FOUND,
                details="The result contains 0 rows",
            )
        return obj

    async def query(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        ordering: Optional[Ordering] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        model = self._model(collection)
        filters = filters or {}
        ordering = ordering or []
        self._check_columns(model, list(filters) + [name for name, _ in ordering])

        def operation(session: Session):
            statement = select(model)
            for name, value in filters.items():
                column = col(getattr(model, name))
                if isinstance(value, (list, tuple, set)):
                    statement = statement.where(column.in_(list(value)))
                elif value is None:
                    statement = statement.where(column.is_(None))
                else:
                    statement = statement.where(column == value)
            for name, direction in ordering:
                column = col(getattr(model, name))
                statement = statement.order_by(column.desc() if direction == "desc" else column.asc())
            if offset:
                statement = statement.offset(offset)
            if limit is not None:
                statement = statement.limit(limit)
            return [self._to_row(obj) for obj in session.exec(statement).all()]

        return await self._run(operation)

    async def get(self, collection: str, id: str) -> Dict[str, Any]:
        model = self._model(collection)
        return await self._run(lambda session: self._to_row(self._get_or_raise(session, model, id)))

    async def insert(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        model = self._model(collection)
        self._check_columns(model, record)

        def operation(session: Session):
            obj = model(**record)
            session.add(obj)
            session.commit()
            session.refresh(obj)
            return self._to_row(obj)

        return await self._run(operation)

    async def update(self, collection: str, id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        model = self._model(collection)
        self._check_columns(model, patch)

        def operation(session: Session):
            obj = self._get_or_raise(session, model, id)
            for key, value in patch.items():
                setattr(obj, key, value)
            if "updated_at" in model.__table__.columns.keys() and "updated_at" not in patch:  # type: ignore[attr-defined]
                setattr(obj, "updated_at", utc_now())
            session.add(obj)
            session.commit()
            session.refresh(obj)
            return self._to_row(obj)

        return await self._run(operation)

    async def delete(self, collection: str, id: str) -> bool:
        model = self._model(collection)

        def operation(session: Session):
            obj = self._get_or_raise(session, model, id)
            session.delete(obj)
            session.commit()
            return True

        return await self._run(operation)


async def check_connection(backend: Backend) -> bool:
    """Cheap round trip used by the health endpoint."""
    response = await as_response(backend.query("agencies", limit=1))
    if response.error is not None:
        logger.warning("backend_health_check_failed", error=str(response.error))
    return response.error is None


@functools.lru_cache(maxsize=1)
def get_backend() -> Backend:
    """Backend for this process: the hosted REST API when configured, else the SQL database."""
    from app.core.config import settings

    if settings.SUPABASE_URL:
        from app.services.rest_backend import RestBackend

        return RestBackend(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)

    from app.db import engine

    return SQLModelBackend(engine)


__all__ = [
    "Backend",
    "BackendResponse",
    "SQLModelBackend",
    "COLLECTIONS",
    "as_response",
    "check_connection",
    "get_backend",
]
