"""Centralized v1 API router: all module routers are included here."""

from fastapi import APIRouter

from orderflow.modules.issue.router import router as issue_router
from orderflow.modules.order.router import router as order_router
from orderflow.modules.piece.router import router as piece_router
from orderflow.modules.split.router import router as split_router
from orderflow.modules.workflow.router import router as workflow_router
from orderflow.schemas.responses import ErrorResponse

# Every v1 endpoint may answer with the shared error envelope
_ERROR_RESPONSES = {
    status: {"model": ErrorResponse}
    for status in (401, 404, 409, 422, 502)
}

v1_router = APIRouter(prefix="/api/v1", responses=_ERROR_RESPONSES)
v1_router.include_router(workflow_router)
v1_router.include_router(order_router)
v1_router.include_router(piece_router)
v1_router.include_router(issue_router)
v1_router.include_router(split_router)
