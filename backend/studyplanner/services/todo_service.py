from __future__ import annotations

from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from studyplanner.models.todo import Todo


def list_todos(db: Session, *, owner_id: str) -> List[Todo]:
    """Newest first."""
    return (
        db.query(Todo)
        .filter(Todo.owner_id == str(owner_id))
        .order_by(Todo.created_at.desc(), Todo.id.desc())
        .all()
    )


def create_todo(db: Session, *, owner_id: str, text: str) -> Todo:
    row = Todo(owner_id=str(owner_id), text=text, completed=False)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _get_owned(db: Session, *, owner_id: str, todo_id: int) -> Todo:
    row = db.query(Todo).filter(Todo.id == int(todo_id), Todo.owner_id == str(owner_id)).first()
    if not row:
        # Someone else's todo looks exactly like a missing one.
        raise HTTPException(status_code=404, detail="Todo not found")
    return row


def update_todo(
    db: Session,
    *,
    owner_id: str,
    todo_id: int,
    text: Optional[str] = None,
    completed: Optional[bool] = None,
) -> Todo:
    row = _get_owned(db, owner_id=owner_id, todo_id=todo_id)
    if text is not None:
        row.text = text
    if completed is not None:
        row.completed = bool(completed)
    db.commit()
    db.refresh(row)
    return row


def delete_todo(db: Session, *, owner_id: str, todo_id: int) -> None:
    row = _get_owned(db, owner_id=owner_id, todo_id=todo_id)
    db.delete(row)
    db.commit()
