"""
Document Analysis API.

POST /api/v1/documents/analyze                 - upload + analyse + project + alert
POST /api/v1/documents/events/{event_id}/retry - re-run the pipeline for a pending event
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from fraudflow.api.deps import get_container
from fraudflow.container import Container
from fraudflow.schemas.results import ProcessingResult
from fraudflow.schemas.verdict import DocumentUpload

router = APIRouter(prefix="/api/v1/documents", tags=["documents"])


async def _read_upload(file: UploadFile, container: Container, document_type: Optional[str]) -> DocumentUpload:
    content = await file.read()
    if not content:
        raise HTTPException(status_code=422, detail="Uploaded file is empty")
    if len(content) > container.settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="Uploaded file is too large")
    return DocumentUpload(
        filename=file.filename or "document",
        content=content,
        content_type=file.content_type or "application/octet-stream",
        document_type=document_type,
    )


@router.post("/analyze", response_model=ProcessingResult)
async def analyze_document(
    file: UploadFile = File(...),
    assure_id: Optional[str] = Form(default=None),
    document_type: Optional[str] = Form(default=None),
    policy_number: Optional[str] = Form(default=None),
    sinister_number: Optional[str] = Form(default=None),
    amount: Optional[float] = Form(default=None),
    description: Optional[str] = Form(default=None),
    container: Container = Depends(get_container),
):
    """Upload a document and run it through the workflow."""
    document = await _read_upload(file, container, document_type)
    metadata: dict = {"assure_id": assure_id}
    for key, value in (
        ("policyNumber", policy_number),
        ("sinisterNumber", sinister_number),
        ("amount", amount),
        ("description", description),
    ):
        if value is not None:
            metadata[key] = value
    return await container.orchestrator.process_document(document, metadata)


@router.post("/events/{event_id}/retry", response_model=ProcessingResult)
async def retry_event(
    event_id: str,
    file: UploadFile = File(...),
    document_type: Optional[str] = Form(default=None),
    container: Container = Depends(get_container),
):
    """Retry a pending event with the same document."""
    document = await _read_upload(file, container, document_type)
    return await container.orchestrator.retry(event_id, document)
