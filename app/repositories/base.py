"""Base repository shared by the per-table repositories."""

import logging
from abc import ABC
from typing import Generic, TypeVar, Type, Optional, Any, Dict, Union
from sqlalchemy.orm import Session, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import update

from app.db.base_class import Base

ModelType = TypeVar("ModelType", bound=Base)
IdType = Union[int, str]


def _as_fields(obj_in: Any, extra: Dict[str, Any]) -> Dict[str, Any]:
    # Accepts a pydantic model or a plain dict
    fields = obj_in.model_dump(exclude_unset=True) if hasattr(obj_in, "model_dump") else dict(obj_in)
    fields.update(extra)
    return fields


class BaseRepository(Generic[ModelType], ABC):
    """Insert, lookup and update helpers with structured operation logs.

    Repositories only flush; committing is left to the caller's
    transaction (``BaseService.run_in_transaction`` or a store session).
    Rows of models carrying ``is_deleted`` are hidden once soft-deleted.
    """

    def __init__(self, db: Session, model: Type[ModelType], correlation_id: Optional[str] = None):
        self.db = db
        self.model = model
        self.correlation_id = correlation_id
        self.logger = logging.getLogger(self.__class__.__name__)

    def _visible(self, query: Query, include_deleted: bool = False) -> Query:
        if not include_deleted and hasattr(self.model, "is_deleted"):
            query = query.filter(self.model.is_deleted == False)
        return query

    def create(self, obj_in: Any, **kwargs: Any) -> ModelType:
        """Insert a row built from ``obj_in`` plus ``kwargs`` and return it refreshed."""
        try:
            db_obj = self.model(**_as_fields(obj_in, kwargs))
            self.db.add(db_obj)
            self.db.flush()
            self.db.refresh(db_obj)
        except SQLAlchemyError as e:
            self._log_failure("create", e)
            raise

        self._log_operation("create", model=self.model.__name__, id=getattr(db_obj, "id", None))
        return db_obj

    def get_by_id(self, id: IdType, include_deleted: bool = False) -> Optional[ModelType]:
        query = self._visible(self.db.query(self.model).filter(self.model.id == id), include_deleted)
        result = query.first()
        self._log_operation("get_by_id", model=self.model.__name__, id=id, found=result is not None)
        return result

    def update_where(self, id: IdType, expected: Dict[str, Any], values: Dict[str, Any]) -> bool:
        """Conditionally update a record in a single statement.

        The row is only touched when every ``expected`` column still holds
        the given value (or one of them, for a list), so two workers racing
        for the same row cannot both win.

        Args:
            id: Record ID
            expected: Column values the row must currently have
            values: Column values to set

        Returns:
            True if the row matched and was updated, False otherwise
        """
        conditions = [self.model.id == id]
        for field, value in expected.items():
            column = getattr(self.model, field)
            if isinstance(value, (list, tuple, set)):
                conditions.append(column.in_(list(value)))
            else:
                conditions.append(column == value)

        stmt = (
            update(self.model)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        matched = self.db.execute(stmt).rowcount == 1
        self._log_operation("update_where", model=self.model.__name__, id=id, matched=matched, fields=list(values.keys()))
        return matched

    def update(self, id: IdType, obj_in: Any, **kwargs: Any) -> Optional[ModelType]:
        """Set the given fields on a visible row; unknown fields are ignored.

        Returns:
            The refreshed row, or None when no visible row has that id
        """
        db_obj = self.get_by_id(id)
        if not db_obj:
            return None

        fields = _as_fields(obj_in, kwargs)
        try:
            for field, value in fields.items():
                if hasattr(db_obj, field):
                    setattr(db_obj, field, value)
            self.db.flush()
            self.db.refresh(db_obj)
        except SQLAlchemyError as e:
            self._log_failure("update", e, id=id)
            raise

        self._log_operation("update", model=self.model.__name__, id=id, fields=list(fields.keys()))
        return db_obj

    def _log_failure(self, operation: str, error: Exception, **kwargs: Any) -> None:
        self.logger.error(
            f"Failed to {operation} {self.model.__name__}",
            extra={
                "correlation_id": self.correlation_id,
                "repository": self.__class__.__name__,
                "error": str(error),
                **kwargs
            }
        )

    def _log_operation(self, operation: str, **kwargs: Any) -> None:
        """Log repository operation with structured fields.

        Args:
            operation: Name of the operation being performed
            **kwargs: Additional fields to include in log
        """
        log_data = {
            "correlation_id": self.correlation_id,
            "repository": self.__class__.__name__,
            "operation": operation,
            **kwargs
        }
        self.logger.info(f"Repository operation: {operation}", extra=log_data)
