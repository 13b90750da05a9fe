"""
Read-side views.

GET /api/v1/persons/{assure_id}            - everything known about a person
GET /api/v1/persons/{assure_id}/patterns   - repeated activity and correlated alerts
GET /api/v1/stats                          - workflow statistics
"""

from fastapi import APIRouter, Depends

from fraudflow.api.deps import get_container
from fraudflow.container import Container

router = APIRouter(prefix="/api/v1", tags=["insights"])


@router.get("/persons/{assure_id}")
async def person_overview(assure_id: str, container: Container = Depends(get_container)):
    return await container.insights.person_overview(assure_id)


@router.get("/stats")
async def workflow_stats(container: Container = Depends(get_container)):
    return await container.insights.stats()


@router.get("/persons/{assure_id}/patterns")
async def person_patterns(assure_id: str, container: Container = Depends(get_container)):
    return await container.insights.patterns(assure_id)
