"""Pydantic schemas for per-user todo lists."""
from typing import List, Optional

from pydantic import BaseModel, Field


class TodoItemIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    completed: bool = False


class TodoCreate(BaseModel):
    """Request body for creating a new todo list."""
    title: str = Field(..., min_length=1, max_length=200)
    items: List[TodoItemIn]


class TodoUpdate(BaseModel):
    """Request body for updating a list; ``items`` replaces every item."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    items: Optional[List[TodoItemIn]] = None


class TodoItemToggle(BaseModel):
    completed: bool
