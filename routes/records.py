"""
Tracking record API routes.

Upload, reload, search/filter, edit, export and cache clearing for the
tracking working set.
"""

from fastapi import APIRouter, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from urllib.parse import quote
from typing import Optional
import structlog

from config import settings
from models.tracking_record import (
    LoadResponse,
    RecordEditResponse,
    RecordFacets,
    RecordListResponse,
    RecordStatsResponse,
    TrackingRecord,
    TrackingRecordUpdate,
)
from services.export_service import export_filename
from services.tracking_service import get_tracking_service
from exceptions import AppError, TrackingRecordNotFoundError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/records", tags=["Tracking Records"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# ROUTES
# ===================

@router.get("", response_model=RecordListResponse)
async def list_records(
    search: Optional[str] = Query(None, description="Free-text search (clears facets)"),
    batch: Optional[str] = Query(None, description="Batch facet"),
    company: Optional[str] = Query(None, description="Company facet"),
    kind: Optional[str] = Query(None, description="Kind facet"),
    status: Optional[str] = Query(None, description="Status facet"),
):
    """
    List tracking records.

    With `search`, runs a free-text search and resets the facets.
    Otherwise applies the facet filters and clears any previous search.
    """
    try:
        service = get_tracking_service()

        if search:
            data = service.search(search)
        else:
            data = service.filter(RecordFacets(
                batch=batch,
                company=company,
                kind=kind,
                status=status,
            ))

        return RecordListResponse(
            data=data,
            total=len(data),
            search=service.view.search_term,
            facets=service.view.facets,
        )

    except Exception as e:
        return handle_error(e)


@router.get("/stats", response_model=RecordStatsResponse)
async def get_record_stats():
    """Counts per company, batch, kind and status over the working set."""
    try:
        service = get_tracking_service()
        return RecordStatsResponse(**service.stats())

    except Exception as e:
        return handle_error(e)


@router.get("/export")
async def export_records():
    """
    Download the currently visible records as Excel.

    One sheet per batch.
    """
    try:
        service = get_tracking_service()
        output = service.export_workbook()
        filename = export_filename()

        return StreamingResponse(
            output,
            media_type=XLSX_MEDIA_TYPE,
            headers={
                "Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"
            },
        )

    except Exception as e:
        return handle_error(e)


@router.get("/{tracking_number}", response_model=TrackingRecord)
async def get_record(tracking_number: str):
    """Get one tracking record from the working set."""
    try:
        service = get_tracking_service()
        for record in service.records():
            if record.tracking_number == tracking_number:
                return record
        raise TrackingRecordNotFoundError(tracking_number)

    except Exception as e:
        return handle_error(e)


@router.post("/upload", response_model=LoadResponse)
async def upload_workbook(
    file: UploadFile = File(..., description="Tracking workbook (.xlsx or .xls)")
):
    """
    Upload a tracking workbook and merge it into the working set.

    Stored records keep their values; new tracking numbers are saved.
    """
    logger.info(
        "workbook_upload_started",
        filename=file.filename,
        content_type=file.content_type
    )

    if not file.filename or not file.filename.lower().endswith((".xlsx", ".xls")):
        raise HTTPException(
            status_code=400,
            detail="File must be an Excel file (.xlsx or .xls)"
        )

    file_bytes = await file.read()

    if len(file_bytes) == 0:
        raise HTTPException(
            status_code=400,
            detail="Uploaded file is empty"
        )

    if len(file_bytes) > settings.max_upload_mb * 1024 * 1024:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds {settings.max_upload_mb} MB"
        )

    try:
        service = get_tracking_service()
        outcome = service.load_workbook(file_bytes, filename=file.filename)
        return outcome.to_response()

    except Exception as e:
        return handle_error(e)


@router.post("/reload", response_model=LoadResponse)
async def reload_records():
    """Reload the default workbook (or stored / sample data)."""
    try:
        service = get_tracking_service()
        return service.load_default().to_response()

    except Exception as e:
        return handle_error(e)


@router.patch("/{tracking_number}", response_model=RecordEditResponse)
async def edit_record(tracking_number: str, data: TrackingRecordUpdate):
    """
    Edit a tracking record.

    The record becomes local: later uploads will not overwrite the
    edited fields.
    """
    try:
        service = get_tracking_service()
        outcome = service.edit_record(tracking_number, data)
        return RecordEditResponse(
            data=outcome.record,
            persisted=outcome.persisted,
            warnings=outcome.warnings,
        )

    except Exception as e:
        return handle_error(e)


@router.delete("/cache", response_model=LoadResponse)
async def clear_cache():
    """
    Delete every stored record and reload the default data.

    Local edits are lost.
    """
    try:
        service = get_tracking_service()
        return service.clear_store().to_response()

    except Exception as e:
        return handle_error(e)
