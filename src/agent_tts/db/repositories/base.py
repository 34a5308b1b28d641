"""
Base repository with common CRUD operations.
"""

from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from agent_tts.models.db import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Generic repository for a single model class."""

    def __init__(self, model: Type[ModelType], session: Session):
        self.model = model
        self.session = session

    def create(self, **kwargs: Any) -> ModelType:
        """
        Create and flush a new instance.

        Args:
            **kwargs: Column values

        Returns:
            The created instance (primary key populated)
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        self.session.flush()
        return instance

    def get(self, id: Any) -> Optional[ModelType]:
        """Get an instance by primary key."""
        return self.session.get(self.model, id)

    def get_all(self, limit: Optional[int] = None, offset: int = 0) -> List[ModelType]:
        """Get all instances, optionally paginated."""
        query = self.session.query(self.model).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def update(self, id: Any, **kwargs: Any) -> Optional[ModelType]:
        """
        Update an instance by primary key.

        Returns:
            The updated instance, or None if not found
        """
        instance = self.get(id)
        if instance is None:
            return None
        for key, value in kwargs.items():
            setattr(instance, key, value)
        self.session.flush()
        return instance

    def delete(self, id: Any) -> bool:
        """Delete an instance by primary key. Returns True if it existed."""
        instance = self.get(id)
        if instance is None:
            return False
        self.session.delete(instance)
        self.session.flush()
        return True

    def count(self) -> int:
        """Count all instances."""
        return self.session.query(self.model).count()
