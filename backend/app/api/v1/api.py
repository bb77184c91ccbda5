from fastapi import APIRouter

from backend.app.api.v1.endpoints import audit, auth, maintenance, users

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(maintenance.router, prefix="/maintenance", tags=["maintenance"])
api_router.include_router(audit.router, prefix="/audit-logs", tags=["audit"])
