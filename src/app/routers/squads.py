"""Squad status API — list squads, inspect one, assign a unit."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from squadron.squads.registry import UnknownUnitError

router = APIRouter(prefix="/api/squads", tags=["squads"])


class AssignUnit(BaseModel):
    unit_id: str = Field(min_length=1)
    destination_room: str = Field(min_length=1)


def _get_engine(request: Request):
    """Retrieve the SquadEngine from app state."""
    engine = getattr(request.app.state, "squad_engine", None)
    if engine is None:
        raise HTTPException(503, "Squad engine not available")
    return engine


@router.get("/")
async def list_squads(request: Request):
    """Status of every live squad."""
    engine = _get_engine(request)
    return {
        "tick": engine.tick_count,
        "squads": [s.to_dict() for s in engine.all_status()],
    }


@router.get("/{squad_id}")
async def get_squad(squad_id: str, request: Request):
    """Status of one squad."""
    engine = _get_engine(request)
    status = engine.squad_status(squad_id)
    if status is None:
        raise HTTPException(404, f"Unknown squad: {squad_id}")
    return status.to_dict()


@router.post("/assign")
async def assign_unit(body: AssignUnit, request: Request):
    """Hand a newly available unit to the squad system."""
    engine = _get_engine(request)
    try:
        squad_id = engine.assign_unit(body.unit_id, body.destination_room)
    except UnknownUnitError:
        raise HTTPException(404, f"Unknown unit: {body.unit_id}")
    if squad_id is None:
        raise HTTPException(422, "Unit could not be assigned")
    return {"unit_id": body.unit_id, "squad_id": squad_id}
