from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from studyplanner.api.deps import get_db, require_user_id
from studyplanner.schemas.todo import TodoCreate, TodoOut, TodoUpdate
from studyplanner.services import todo_service

router = APIRouter(tags=["todos"])


@router.get("/todos", response_model=List[TodoOut])
def list_todos(user_id: str = Depends(require_user_id), db: Session = Depends(get_db)):
    return todo_service.list_todos(db, owner_id=user_id)


@router.post("/todos", response_model=TodoOut, status_code=201)
def create_todo(payload: TodoCreate, user_id: str = Depends(require_user_id), db: Session = Depends(get_db)):
    return todo_service.create_todo(db, owner_id=user_id, text=payload.text)


@router.patch("/todos/{todo_id}", response_model=TodoOut)
def update_todo(
    todo_id: int,
    payload: TodoUpdate,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    return todo_service.update_todo(
        db, owner_id=user_id, todo_id=todo_id, text=payload.text, completed=payload.completed
    )


@router.delete("/todos/{todo_id}", status_code=204)
def delete_todo(todo_id: int, user_id: str = Depends(require_user_id), db: Session = Depends(get_db)):
    todo_service.delete_todo(db, owner_id=user_id, todo_id=todo_id)
    return Response(status_code=204)
