"""
Cooperative Society API Application Factory
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .system import CooperativeSystem
from .members import router as members_router
from .loans import router as loans_router
from .guarantors import router as guarantors_router
from .notifications import router as notifications_router
from .admin import router as admin_router
from .cooperatives import router as cooperatives_router
from .investments import router as investments_router
from ..tenancy import tenant_context
from ..errors import NotFoundError, TenantError
from .. import __version__


TENANT_HEADER = "X-Cooperative-ID"


def create_app(system: Optional[CooperativeSystem] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Cooperative Society API",
        description="Member savings, guarantor-backed loans, repayments and fines",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.system = system or CooperativeSystem()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def cooperative_scope(request: Request, call_next):
        """Run the request inside the cooperative named by the tenant header"""
        cooperative_id = request.headers.get(TENANT_HEADER)
        if not cooperative_id:
            # Super-admin mode
            return await call_next(request)

        try:
            app.state.system.cooperatives.require_operational(cooperative_id)
        except NotFoundError as e:
            return JSONResponse(status_code=404, content={"detail": str(e)})
        except TenantError as e:
            return JSONResponse(status_code=403, content={"detail": str(e)})

        with tenant_context(cooperative_id):
            return await call_next(request)

    app.include_router(members_router, prefix="/members", tags=["Members"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(guarantors_router, prefix="/guarantors", tags=["Guarantors"])
    app.include_router(investments_router, prefix="/investments", tags=["Investments"])
    app.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])
    app.include_router(cooperatives_router, prefix="/cooperatives", tags=["Cooperatives"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "cooperative_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Cooperative Society API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "members": "/members",
                "loans": "/loans",
                "guarantors": "/guarantors",
                "investments": "/investments",
                "notifications": "/notifications",
                "admin": "/admin",
                "cooperatives": "/cooperatives",
            }
        }

    return app
