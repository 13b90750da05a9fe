"""
Risk profile API (read-only; profiles change only through qualification).

GET /api/v1/risques               - list profiles, highest score first
GET /api/v1/risques/{assure_id}   - profile of a person
"""

from typing import Optional

from fastapi import APIRouter, Depends

from fraudflow.api.deps import get_container
from fraudflow.container import Container
from fraudflow.errors import RecordNotFound
from fraudflow.schemas.risque import RiskLevel, Risque, risque_id_for

router = APIRouter(prefix="/api/v1/risques", tags=["risques"])


@router.get("", response_model=list[Risque])
async def list_risques(level: Optional[RiskLevel] = None, container: Container = Depends(get_container)):
    return await container.ledger.list(level=level)


@router.get("/{assure_id}", response_model=Risque)
async def get_risque(assure_id: str, container: Container = Depends(get_container)):
    profile = await container.ledger.get_for_person(assure_id)
    if profile is None:
        raise RecordNotFound("risques", risque_id_for(assure_id))
    return profile
