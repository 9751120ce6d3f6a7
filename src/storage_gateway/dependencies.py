from fastapi import HTTPException, Request, status

from .services.gateway.orchestrator import GatewayOrchestrator


def get_orchestrator(request: Request) -> GatewayOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Gateway orchestrator not initialized",
        )
    return orchestrator
