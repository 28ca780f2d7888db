# Journal Router - Motivation phrases and the free-text journal
from typing import List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from shared.state import get_dispatcher, get_streak_service
from streak.schemas import JournalEntry

router = APIRouter(tags=["Journal"])


class TextRequest(BaseModel):
    text: str


async def _submit(func, *args):
    try:
        return await get_dispatcher().submit(func, *args)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/motivations", response_model=List[str])
async def list_motivations():
    return await get_streak_service().list_motivations()


@router.post("/motivations", response_model=List[str])
async def add_motivation(request: TextRequest):
    return await _submit(get_streak_service().add_motivation, request.text)


@router.delete("/motivations/{index}", response_model=List[str])
async def delete_motivation(index: int):
    return await _submit(get_streak_service().delete_motivation, index)


@router.get("/journal", response_model=List[JournalEntry])
async def list_journal():
    """Journal entries, newest first."""
    return await get_streak_service().list_journal()


@router.post("/journal", response_model=List[JournalEntry])
async def add_journal_entry(request: TextRequest):
    return await _submit(get_streak_service().add_journal_entry, request.text)


@router.delete("/journal/{index}", response_model=List[JournalEntry])
async def delete_journal_entry(index: int):
    return await _submit(get_streak_service().delete_journal_entry, index)
