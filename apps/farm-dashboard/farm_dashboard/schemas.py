from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _not_blank(value: str) -> str:
    if not value or not value.strip():
        raise ValueError("must not be empty")
    return value.strip()


class CompletedTaskCreate(BaseModel):
    description: str
    date: Optional[str] = Field(default=None, description="YYYY-MM-DD, defaults to today")

    @field_validator("description")
    @classmethod
    def _check_description(cls, value: str) -> str:
        return _not_blank(value)


class UpcomingTaskCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: str
    due_date: Optional[str] = Field(default=None, alias="dueDate", description="YYYY-MM-DD, defaults to today")

    @field_validator("description")
    @classmethod
    def _check_description(cls, value: str) -> str:
        return _not_blank(value)


class NoteCreate(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def _check_content(cls, value: str) -> str:
        return _not_blank(value)


class KnowledgeCreate(BaseModel):
    topic: str
    content: str

    @field_validator("topic", "content")
    @classmethod
    def _check_text(cls, value: str) -> str:
        return _not_blank(value)


class ChatRequest(BaseModel):
    message: str

    @field_validator("message")
    @classmethod
    def _check_message(cls, value: str) -> str:
        return _not_blank(value)


class SyncToggle(BaseModel):
    enabled: bool


class ImportEnvelope(BaseModel):
    exportDate: Optional[str] = None
    farmName: Optional[str] = None
    completedTasks: Optional[List[Dict[str, Any]]] = None
    upcomingTasks: Optional[List[Dict[str, Any]]] = None
    notes: Optional[List[Dict[str, Any]]] = None
    knowledgeBase: Optional[List[Dict[str, Any]]] = None
    chatHistory: Optional[List[Dict[str, Any]]] = None
