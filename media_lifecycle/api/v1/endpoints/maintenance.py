"""Reclamation and reconciliation endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from media_lifecycle.api.deps import get_clock, get_db, get_store
from media_lifecycle.clock import Clock
from media_lifecycle.schemas.asset import (
    ReclaimRequest,
    ReclaimResponse,
    ReclaimStatus,
    ReconcileRequest,
    ReconcileResponse,
)
from media_lifecycle.services.reclamation_service import find_untracked_blobs
from media_lifecycle.storage.base import BaseObjectStore, StorageError

router = APIRouter()
logger = logging.getLogger(__name__)

RECLAIM_TASK = "media_lifecycle.tasks.reclamation.reclaim_assets"


@router.post("/reclaim", response_model=ReclaimResponse, status_code=status.HTTP_202_ACCEPTED)
def trigger_reclamation(request: ReclaimRequest):
    """Dispatch a reclamation run now instead of waiting for the schedule.

    Returns task ID to track progress.
    """
    from media_lifecycle.celery_app import celery_app

    try:
        task = celery_app.send_task(RECLAIM_TASK, kwargs={"dry_run": request.dry_run})
    except Exception as e:
        logger.error(f"Failed to start reclamation: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to start reclamation: {str(e)}",
        )

    return ReclaimResponse(
        task_id=task.id,
        status="accepted",
        message="Reclamation dry run started" if request.dry_run else "Reclamation started",
    )


@router.get("/reclaim/{task_id}", response_model=ReclaimStatus)
def get_reclamation_status(task_id: str):
    """Get status of a reclamation task."""
    from media_lifecycle.celery_app import celery_app

    try:
        result = celery_app.AsyncResult(task_id)
        response = ReclaimStatus(task_id=task_id, status=result.state)

        if result.ready():
            if result.successful():
                response.result = result.result
            else:
                response.error = str(result.info)

        return response

    except Exception as e:
        logger.error(f"Failed to get task status: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get task status: {str(e)}",
        )


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile(
    request: ReconcileRequest,
    db: Session = Depends(get_db),
    store: BaseObjectStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Report (or purge) blobs in the object store that no asset record tracks."""
    try:
        results = await find_untracked_blobs(
            db, store, clock=clock, purge=request.purge, grace_hours=request.grace_hours
        )
    except (StorageError, OSError) as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to list object store: {str(e)}",
        )
    return ReconcileResponse(**results)
