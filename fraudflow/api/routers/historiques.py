"""
Historique (audit log) API.

GET  /api/v1/historiques                         - list entries
GET  /api/v1/historiques/{historique_id}         - get one entry
POST /api/v1/historiques/{historique_id}/status  - close an active entry
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from fraudflow.api.deps import get_container
from fraudflow.container import Container
from fraudflow.schemas.historique import HistoriqueCategory, HistoriqueEntry, HistoriqueStatus, Impact

router = APIRouter(prefix="/api/v1/historiques", tags=["historiques"])


class StatusRequest(BaseModel):
    status: HistoriqueStatus


@router.get("", response_model=list[HistoriqueEntry])
async def list_historiques(
    assure_id: Optional[str] = None,
    category: Optional[HistoriqueCategory] = None,
    status: Optional[HistoriqueStatus] = None,
    impact: Optional[Impact] = None,
    container: Container = Depends(get_container),
):
    return await container.historiques.list(assure_id=assure_id, category=category, status=status, impact=impact)


@router.get("/{historique_id}", response_model=HistoriqueEntry)
async def get_historique(historique_id: str, container: Container = Depends(get_container)):
    return await container.historiques.require(historique_id)


@router.post("/{historique_id}/status", response_model=HistoriqueEntry)
async def close_historique(
    historique_id: str,
    body: StatusRequest,
    container: Container = Depends(get_container),
):
    return await container.historiques.complete(historique_id, body.status)
