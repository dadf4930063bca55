"""Test pattern API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from exam_engine.db import get_db
from exam_engine.models.pattern import PatternCreate, PatternType, PatternUpdate, TestPattern
from exam_engine.services.pattern import PatternService

router = APIRouter(prefix="/api/patterns", tags=["patterns"])


class ClonePatternRequest(BaseModel):
    name: str = Field(min_length=1)
    created_by_id: str | None = None


@router.post("", response_model=TestPattern, status_code=201)
async def create_pattern(
    pattern: PatternCreate,
    created_by_id: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Create a custom pattern. Section ranges are derived from the counts."""
    service = PatternService(db)
    return await service.create_pattern(pattern, created_by_id=created_by_id)


@router.get("", response_model=list[TestPattern])
async def list_patterns(
    pattern_type: PatternType | None = None,
    is_default: bool | None = None,
    search: str | None = Query(None, description="Matches name or description"),
    db: AsyncSession = Depends(get_db),
):
    """List active patterns, defaults first."""
    service = PatternService(db)
    return await service.list_patterns(
        pattern_type=pattern_type,
        is_default=is_default,
        search=search,
    )


@router.post("/seed-defaults")
async def seed_default_patterns(db: AsyncSession = Depends(get_db)):
    """Create any built-in pattern that is missing."""
    service = PatternService(db)
    return await service.seed_default_patterns()


@router.get("/{pattern_id}", response_model=TestPattern)
async def get_pattern(
    pattern_id: str,
    db: AsyncSession = Depends(get_db),
):
    service = PatternService(db)
    pattern = await service.get_pattern(pattern_id)
    if not pattern:
        raise HTTPException(status_code=404, detail="Pattern not found")
    return pattern


@router.put("/{pattern_id}", response_model=TestPattern)
async def update_pattern(
    pattern_id: str,
    data: PatternUpdate,
    db: AsyncSession = Depends(get_db),
):
    service = PatternService(db)
    return await service.update_pattern(pattern_id, data)


@router.delete("/{pattern_id}", status_code=204)
async def delete_pattern(
    pattern_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Deactivate a pattern that no test uses."""
    service = PatternService(db)
    await service.delete_pattern(pattern_id)


@router.post("/{pattern_id}/clone", response_model=TestPattern, status_code=201)
async def clone_pattern(
    pattern_id: str,
    request: ClonePatternRequest,
    db: AsyncSession = Depends(get_db),
):
    service = PatternService(db)
    return await service.clone_pattern(pattern_id, request.name, request.created_by_id)
