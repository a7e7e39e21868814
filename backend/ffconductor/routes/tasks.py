"""
Task and batch endpoints.

Starting a task or batch only queues it on the task executor; clients poll
the task (or batch) for progress.
"""

import logging
import os
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from .models import BatchDetail, CreateBatchRequest, CreateTaskRequest, OperationResponse, ScanBatchRequest
from ..files import OutputDirectoryError, OutputExistsError, is_file_accessible
from ..jobs.errors import BatchNotFoundError, InvalidStateTransitionError, TaskNotFoundError
from ..jobs.models import BatchTask, ConversionTask, TaskStatus
from ..templates.errors import TemplateNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])
batch_router = APIRouter(prefix="/api/batches", tags=["batches"])


# ============================================================================
# TASKS
# ============================================================================

@router.post("", response_model=ConversionTask, status_code=201)
def create_task(body: CreateTaskRequest, request: Request):
    """Create a pending task (probes the input, so it runs in a worker thread)."""
    if not is_file_accessible(body.input_path):
        raise HTTPException(status_code=400, detail=f"Input file missing or empty: {body.input_path}")
    try:
        return request.app.state.task_service.create_task(
            input_path=body.input_path,
            output_path=body.output_path,
            template_id=body.template_id,
            parameters=body.parameters or None,
            file_exists_action=body.file_exists_action,
        )
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OutputExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("", response_model=List[ConversionTask])
async def list_tasks(
    request: Request,
    limit: int = Query(50, ge=1, le=1000),
    status: Optional[TaskStatus] = None,
):
    return request.app.state.task_service.get_task_history(limit=limit, status=status)


@router.get("/running", response_model=Optional[ConversionTask])
async def get_running_task(request: Request):
    return request.app.state.task_service.get_running_task()


@router.post("/cleanup", response_model=OperationResponse)
async def cleanup_history(request: Request, older_than_days: int = Query(30, ge=0)):
    """Delete finished tasks created more than `older_than_days` ago."""
    cutoff = datetime.now() - timedelta(days=older_than_days)
    count = request.app.state.task_service.cleanup_history(cutoff)
    return OperationResponse(success=True, message=f"Deleted {count} task(s)")


@router.get("/{task_id}", response_model=ConversionTask)
async def get_task(task_id: str, request: Request):
    task = request.app.state.task_service.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    return task


@router.post("/{task_id}/start", response_model=OperationResponse, status_code=202)
async def start_task(task_id: str, request: Request):
    try:
        request.app.state.task_service.submit(task_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    logger.info(f"[API] Task {task_id} submitted")
    return OperationResponse(success=True, message=f"Task {task_id} submitted")


@router.post("/{task_id}/cancel", response_model=ConversionTask)
def cancel_task(task_id: str, request: Request):
    """Cancel a task; blocks briefly while a running process is terminated."""
    try:
        return request.app.state.task_service.cancel_task(task_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# ============================================================================
# BATCHES
# ============================================================================

@batch_router.post("", response_model=BatchTask, status_code=201)
def create_batch(body: CreateBatchRequest, request: Request):
    try:
        return request.app.state.task_service.create_batch(
            input_paths=body.input_paths,
            output_directory=body.output_directory,
            template_id=body.template_id,
            name=body.name,
            parameters=body.parameters or None,
            name_pattern=body.name_pattern,
        )
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OutputDirectoryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OutputExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))


@batch_router.post("/scan", response_model=BatchTask, status_code=201)
def create_batch_from_directory(body: ScanBatchRequest, request: Request):
    """Batch the media files of a folder that the template accepts."""
    if not os.path.isdir(body.input_directory):
        raise HTTPException(status_code=400, detail=f"Not a directory: {body.input_directory}")
    try:
        return request.app.state.task_service.create_batch_from_directory(
            input_directory=body.input_directory,
            output_directory=body.output_directory,
            template_id=body.template_id,
            recursive=body.recursive,
            extensions=body.extensions,
            name=body.name,
            parameters=body.parameters or None,
            name_pattern=body.name_pattern,
        )
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OutputDirectoryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OutputExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))


@batch_router.get("/{batch_id}", response_model=BatchDetail)
async def get_batch(batch_id: str, request: Request):
    service = request.app.state.task_service
    batch = service.get_batch(batch_id)
    if batch is None:
        raise HTTPException(status_code=404, detail=f"Batch not found: {batch_id}")
    return BatchDetail(batch=batch, tasks=service.get_batch_tasks(batch_id))


@batch_router.post("/{batch_id}/start", response_model=OperationResponse, status_code=202)
async def start_batch(batch_id: str, request: Request):
    try:
        request.app.state.task_service.submit_batch(batch_id)
    except BatchNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return OperationResponse(success=True, message=f"Batch {batch_id} submitted")


@batch_router.post("/{batch_id}/cancel", response_model=BatchTask)
def cancel_batch(batch_id: str, request: Request):
    try:
        return request.app.state.task_service.cancel_batch(batch_id)
    except BatchNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
