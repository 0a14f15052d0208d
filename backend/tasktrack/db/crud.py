from __future__ import annotations

from typing import Any, TypeVar

from sqlmodel import Session, SQLModel, select

ModelT = TypeVar("ModelT", bound=SQLModel)


def get_for_update(session: Session, model: type[ModelT], obj_id: object) -> ModelT | None:
    """Load one row holding a row-level write lock until the transaction ends."""
    pk = model.__table__.primary_key.columns.values()[0]  # type: ignore[attr-defined]
    statement = (
        select(model)
        .where(pk == obj_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return session.exec(statement).first()


def create(session: Session, model: type[ModelT], **data: Any) -> ModelT:
    obj = model(**data)
    session.add(obj)
    session.flush()
    return obj


def save(session: Session, obj: ModelT) -> ModelT:
    session.add(obj)
    session.flush()
    return obj
