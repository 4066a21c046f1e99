"""
Database Service Layer
"""
from typing import List, Optional, Dict, Any, Union
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy import and_, func
import uuid
import logging

from fintrack.database.models import (
    Account as AccountModel,
    Category as CategoryModel,
    Transaction as TransactionModel,
    CategoryTypeEnum, TransactionTypeEnum
)

logger = logging.getLogger(__name__)

# Collection to model mapping
COLLECTION_MODEL_MAP = {
    "accounts": AccountModel,
    "categories": CategoryModel,
    "transactions": TransactionModel,
}

# Enum-valued columns per collection, converted from plain strings on write
COLLECTION_ENUM_FIELDS = {
    "categories": {"type": CategoryTypeEnum},
    "transactions": {"type": TransactionTypeEnum},
}


class DatabaseService:
    """Database service for collection-style operations over the ORM models."""

    def __init__(self, session: Session):
        """
        Initialize database service.

        Args:
            session: SQLAlchemy session (required)
        """
        if session is None:
            raise ValueError("Session is required")
        self.session = session

    def model_for(self, collection: str):
        model_class = COLLECTION_MODEL_MAP.get(collection)
        if not model_class:
            raise ValueError(f"Unknown collection: {collection}")
        return model_class

    def _model_to_dict(self, model_instance) -> Dict[str, Any]:
        """Convert SQLAlchemy model instance to dictionary."""
        if model_instance is None:
            return None

        result = {}
        for column in model_instance.__table__.columns:
            value = getattr(model_instance, column.name)
            # Convert enums to string
            if hasattr(value, 'value'):
                value = value.value
            result[column.name] = value
        return result

    def _coerce_enums(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        for field, enum_class in COLLECTION_ENUM_FIELDS.get(collection, {}).items():
            value = data.get(field)
            if isinstance(value, str):
                data[field] = enum_class(value.lower())
        return data

    def _build_query_filters(self, model_class, query: Dict[str, Any]):
        """Build SQLAlchemy filter conditions from query dict."""
        filters = []
        for key, value in query.items():
            if hasattr(model_class, key):
                filters.append(getattr(model_class, key) == value)
        return filters

    def _filtered(self, collection: str, query: Optional[Dict[str, Any]]):
        model_class = self.model_for(collection)
        q = self.session.query(model_class)
        if query:
            query = self._coerce_enums(collection, dict(query))
            filters = self._build_query_filters(model_class, query)
            if filters:
                q = q.filter(and_(*filters))
        return q

    def _new_instance(self, collection: str, document: Dict[str, Any]):
        model_class = self.model_for(collection)

        # Add ID if not present
        if 'id' not in document:
            document['id'] = str(uuid.uuid4())

        if 'created_at' not in document and hasattr(model_class, 'created_at'):
            document['created_at'] = datetime.utcnow()

        self._coerce_enums(collection, document)
        return model_class(**document)

    def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a document into the collection."""
        instance = self._new_instance(collection, dict(document))
        self.session.add(instance)
        self.session.flush()

        return self._model_to_dict(instance)

    def insert_many(self, collection: str, documents: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Insert several documents in one flush."""
        instances = [self._new_instance(collection, dict(doc)) for doc in documents]
        self.session.add_all(instances)
        self.session.flush()

        return [self._model_to_dict(instance) for instance in instances]

    def find(self, collection: str, query: Optional[Dict[str, Any]] = None,
             order_by=None) -> List[Dict[str, Any]]:
        """Find documents matching the query."""
        q = self._filtered(collection, query)
        if order_by is not None:
            q = q.order_by(*order_by) if isinstance(order_by, (list, tuple)) else q.order_by(order_by)

        results = q.all()
        return [self._model_to_dict(r) for r in results]

    def find_one(self, collection: str, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Find the first document matching the query."""
        result = self._filtered(collection, query).first()
        return self._model_to_dict(result) if result else None

    def update(self, collection: str, document_id_or_query: Union[str, Dict[str, Any]],
               update_data: Dict[str, Any] = None) -> int:
        """Update documents matching the query."""
        if update_data is None:
            raise ValueError("update_data is required")

        model_class = self.model_for(collection)

        # Build query
        if isinstance(document_id_or_query, str):
            query = {"id": document_id_or_query}
        else:
            query = document_id_or_query

        update_data = self._coerce_enums(collection, dict(update_data))

        # Add updated_at timestamp
        if 'updated_at' not in update_data and hasattr(model_class, 'updated_at'):
            update_data['updated_at'] = datetime.utcnow()

        count = self._filtered(collection, query).update(update_data, synchronize_session="fetch")
        self.session.flush()

        return count

    def delete(self, collection: str, document_id_or_query: Union[str, Dict[str, Any]]) -> int:
        """Delete documents matching the query."""
        if isinstance(document_id_or_query, str):
            query = {"id": document_id_or_query}
        else:
            query = document_id_or_query

        count = self._filtered(collection, query).delete(synchronize_session="fetch")
        self.session.flush()

        return count

    def count(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        """Count documents matching the query."""
        model_class = self.model_for(collection)
        q = self._filtered(collection, query).with_entities(func.count(model_class.id))
        return q.scalar() or 0


def get_db_service(session: Session) -> DatabaseService:
    """
    Get database service instance.

    Args:
        session: SQLAlchemy session (required)

    Returns:
        DatabaseService instance
    """
    return DatabaseService(session)
