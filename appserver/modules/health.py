"""Health check endpoint"""

from typing import List

from fastapi import APIRouter, Request

from appserver.core.modules import AppModule, RouterEntry

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request):
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "server": getattr(request.app.state, "server_name", None),
    }


class HealthModule(AppModule):
    def routers(self) -> List[RouterEntry]:
        return [RouterEntry(router=router, priority=100)]
