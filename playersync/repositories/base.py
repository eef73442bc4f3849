"""
Base repository class for data access layer.

The repository pattern provides:
1. Separation of data access logic from sync and matching logic
2. Single place for query logic
3. Easier testing (repositories run against an in-memory SQLite session)

Example:
    class PlayerRepository(BaseRepository[Player]):
        def find_by_espn_id(self, espn_id: str) -> Optional[Player]:
            return self.where_first(Player.espn_id == espn_id)
"""
from abc import ABC
from typing import TypeVar, Generic, Type, Optional, List, Any
from sqlalchemy.orm import Query, Session

T = TypeVar("T")


class BaseRepository(Generic[T], ABC):
    """
    Base repository class providing common data access methods.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        """
        Initialize the repository.

        Args:
            model_type: The SQLAlchemy model class
            db: The database session
        """
        self.model_type = model_type
        self.db = db

    # ========================================================================
    # CRUD Operations
    # ========================================================================

    def find_by_id(self, id: Any) -> Optional[T]:
        """Find a single record by primary key."""
        return self.db.get(self.model_type, id)

    def create(self, **kwargs) -> T:
        """
        Create a new record.

        Returns:
            The created record (not yet committed to database)
        """
        instance = self.model_type(**kwargs)
        self.db.add(instance)
        return instance

    # ========================================================================
    # Query Builders
    # ========================================================================

    def query(self) -> Query:
        """Get a new query object for this model."""
        return self.db.query(self.model_type)

    def where(self, *criterion) -> List[T]:
        """Filter records using SQLAlchemy expressions."""
        return self.db.query(self.model_type).filter(*criterion).all()

    def where_first(self, *criterion) -> Optional[T]:
        """Filter records using SQLAlchemy expressions and return first match."""
        return self.db.query(self.model_type).filter(*criterion).first()

    # ========================================================================
    # Session Operations
    # ========================================================================

    def flush(self) -> None:
        """Flush pending changes without committing."""
        self.db.flush()

    def rollback(self) -> None:
        """Rollback pending changes."""
        self.db.rollback()
