from __future__ import annotations

from datetime import date
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, status

from farm_dashboard.http_utils import documents
from farm_dashboard.schemas import CompletedTaskCreate, KnowledgeCreate, NoteCreate, UpcomingTaskCreate
from farm_dashboard.services.documents import DocumentService
from farm_dashboard.services.storage import COMPLETED_TASKS, KNOWLEDGE_BASE, NOTES, UPCOMING_TASKS

router = APIRouter(prefix="/v1")


async def _delete(docs: DocumentService, key: str, item_id: int) -> Dict[str, object]:
    if not await docs.remove(key, item_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    return {"status": "deleted", "id": item_id}


@router.get("/tasks/completed")
async def completed_tasks(docs: DocumentService = Depends(documents)) -> List[dict]:
    return docs.items(COMPLETED_TASKS)


@router.post("/tasks/completed", status_code=status.HTTP_201_CREATED)
async def add_completed_task(payload: CompletedTaskCreate, docs: DocumentService = Depends(documents)) -> dict:
    return await docs.add(
        COMPLETED_TASKS,
        {"description": payload.description, "date": payload.date or date.today().isoformat()},
    )


@router.delete("/tasks/completed/{item_id}")
async def delete_completed_task(item_id: int, docs: DocumentService = Depends(documents)):
    return await _delete(docs, COMPLETED_TASKS, item_id)


@router.get("/tasks/upcoming")
async def upcoming_tasks(docs: DocumentService = Depends(documents)) -> List[dict]:
    return docs.upcoming_by_due_date()


@router.post("/tasks/upcoming", status_code=status.HTTP_201_CREATED)
async def add_upcoming_task(payload: UpcomingTaskCreate, docs: DocumentService = Depends(documents)) -> dict:
    return await docs.add(
        UPCOMING_TASKS,
        {"description": payload.description, "dueDate": payload.due_date or date.today().isoformat()},
    )


@router.delete("/tasks/upcoming/{item_id}")
async def delete_upcoming_task(item_id: int, docs: DocumentService = Depends(documents)):
    return await _delete(docs, UPCOMING_TASKS, item_id)


@router.get("/notes")
async def notes(docs: DocumentService = Depends(documents)) -> List[dict]:
    return docs.items(NOTES)


@router.post("/notes", status_code=status.HTTP_201_CREATED)
async def add_note(payload: NoteCreate, docs: DocumentService = Depends(documents)) -> dict:
    return await docs.add(NOTES, {"content": payload.content})


@router.delete("/notes/{item_id}")
async def delete_note(item_id: int, docs: DocumentService = Depends(documents)):
    return await _delete(docs, NOTES, item_id)


@router.get("/knowledge")
async def knowledge(docs: DocumentService = Depends(documents)) -> List[dict]:
    return docs.items(KNOWLEDGE_BASE)


@router.post("/knowledge", status_code=status.HTTP_201_CREATED)
async def add_knowledge(payload: KnowledgeCreate, docs: DocumentService = Depends(documents)) -> dict:
    return await docs.add(KNOWLEDGE_BASE, {"topic": payload.topic, "content": payload.content})


@router.delete("/knowledge/{item_id}")
async def delete_knowledge(item_id: int, docs: DocumentService = Depends(documents)):
    return await _delete(docs, KNOWLEDGE_BASE, item_id)


@router.get("/stats")
async def stats(docs: DocumentService = Depends(documents)) -> Dict[str, int]:
    return docs.stats()
