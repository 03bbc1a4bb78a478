from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

ModelT = TypeVar("ModelT")


class Repository(Generic[ModelT]):
    """
    Generic create/read/update/delete access for one ORM entity.

    The repository flushes but never commits; the calling service owns the
    transaction boundary.
    """

    def __init__(self, session: Session, model: Type[ModelT]):
        self.session = session
        self.model = model

    def get(self, entity_id: Any) -> Optional[ModelT]:
        if entity_id is None:
            return None
        return self.session.get(self.model, entity_id)

    def find_one(self, **filters: Any) -> Optional[ModelT]:
        stmt = select(self.model).filter_by(**filters).limit(1)
        return self.session.scalars(stmt).first()

    def list(self, *criteria: Any, order_by: Any = None, **filters: Any) -> List[ModelT]:
        stmt = select(self.model).filter_by(**filters)
        if criteria:
            stmt = stmt.where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        return list(self.session.scalars(stmt))

    def exists(self, *criteria: Any, **filters: Any) -> bool:
        stmt = select(self.model).filter_by(**filters)
        if criteria:
            stmt = stmt.where(*criteria)
        return self.session.scalars(stmt.limit(1)).first() is not None

    def add(self, entity: ModelT) -> ModelT:
        self.session.add(entity)
        self.session.flush()
        return entity

    def update(self, entity: ModelT, **values: Any) -> ModelT:
        for key, value in values.items():
            setattr(entity, key, value)
        self.session.flush()
        return entity

    def delete(self, entity: ModelT) -> None:
        self.session.delete(entity)
        self.session.flush()
