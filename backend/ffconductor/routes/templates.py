"""
Template endpoints.

System templates are read-only here: update and delete answer 403.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request

from .models import CopyTemplateRequest, OperationResponse, TemplateRequest
from ..persistence.errors import DuplicateKeyError
from ..templates.errors import TemplateNotFoundError, TemplateProtectedError
from ..templates.models import CommandTemplate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/templates", tags=["templates"])


@router.get("", response_model=List[CommandTemplate])
async def list_templates(
    request: Request,
    include_system: bool = True,
    category: Optional[str] = None,
):
    service = request.app.state.template_service
    if category:
        templates = service.get_templates_by_category(category)
        if not include_system:
            templates = [t for t in templates if not t.is_system]
        return templates
    return service.get_all_templates(include_system=include_system)


@router.get("/categories", response_model=List[str])
async def list_categories(request: Request):
    return request.app.state.template_service.get_categories()


@router.post("/reset-system", response_model=OperationResponse)
async def reset_system_templates(request: Request):
    """Drop and reseed the built-in templates."""
    count = request.app.state.template_service.reset_system_templates()
    return OperationResponse(success=True, message=f"Reset {count} system templates")


@router.get("/{template_id}", response_model=CommandTemplate)
async def get_template(template_id: str, request: Request):
    template = request.app.state.template_service.get_template(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail=f"Template not found: {template_id}")
    return template


@router.post("", response_model=CommandTemplate, status_code=201)
async def create_template(body: TemplateRequest, request: Request):
    try:
        template = CommandTemplate(**body.model_dump())
        return request.app.state.template_service.create_template(template)
    except DuplicateKeyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/{template_id}", response_model=CommandTemplate)
async def update_template(template_id: str, body: TemplateRequest, request: Request):
    service = request.app.state.template_service
    try:
        existing = service.get_template_or_raise(template_id)
        template = CommandTemplate(**{**existing.model_dump(), **body.model_dump()})
        return service.update_template(template)
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TemplateProtectedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except DuplicateKeyError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete("/{template_id}", response_model=OperationResponse)
async def delete_template(template_id: str, request: Request):
    try:
        request.app.state.template_service.delete_template(template_id)
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TemplateProtectedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return OperationResponse(success=True, message=f"Template {template_id} deleted")


@router.post("/{template_id}/copy", response_model=CommandTemplate, status_code=201)
async def copy_template(template_id: str, request: Request, body: Optional[CopyTemplateRequest] = None):
    try:
        return request.app.state.template_service.copy_template(
            template_id, new_name=body.name if body else None
        )
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DuplicateKeyError as e:
        raise HTTPException(status_code=409, detail=str(e))
