from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Core
from core.config import settings
from core.logging_config import logger
from core.organization_access import RouteAccessDenied
from core.responses import error_envelope

# -------------------------------------------------
# Routers
# -------------------------------------------------
from routers.organizations import router as organizations_router
from routers.members import router as members_router
from routers.invitations import router as invitations_router
from routers.invitations import public_router as public_invitations_router
from routers.general_invite_links import router as general_invite_links_router
from routers.general_invite_links import public_router as public_general_invite_links_router
from routers.qr_codes import router as qr_codes_router
from routers.access_logs import router as access_logs_router
from routers.chat import router as chat_router
from routers.organization_roles import router as organization_roles_router
from routers.health import router as health_router


# -------------------------------------------------
# Create the Application
# -------------------------------------------------
def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version="1.0.0",
        description="Acceso Residencial API: multi-tenant access control, visitor QR codes and chat",
    )

    # -------------------------------------------------
    # CORS
    # -------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------
    # Startup logging
    # -------------------------------------------------
    @app.on_event("startup")
    async def on_startup():
        logger.info(f"Starting {settings.PROJECT_NAME} ({settings.ENV})")
        for route in app.routes:
            methods = ",".join(sorted(getattr(route, "methods", None) or []))
            logger.debug(f"Route {methods:10s} {getattr(route, 'path', route)}")

    # -------------------------------------------------
    # Error handling
    # -------------------------------------------------
    @app.exception_handler(StarletteHTTPException)
    async def handle_http(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (401, 403, 500):
            logger.warning(
                f"HTTP {exc.status_code} at {request.url}: {exc.detail}"
            )
        return error_envelope(
            str(exc.detail),
            exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg")}
            for err in exc.errors()
        ]
        return error_envelope("Datos inválidos.", 400, data=errors)

    @app.exception_handler(RouteAccessDenied)
    async def handle_route_denied(request: Request, exc: RouteAccessDenied):
        logger.info(f"Route access denied at {request.url}; redirecting to {exc.redirect_to}")
        return RedirectResponse(exc.redirect_to, status_code=307)

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.error("Unhandled error at %s", request.url, exc_info=exc)
        return error_envelope("Error interno del servidor.", 500)

    # -------------------------------------------------
    # Register Routers
    # -------------------------------------------------

    # Organizations
    app.include_router(organizations_router)
    app.include_router(members_router)
    app.include_router(organization_roles_router)

    # Invitations
    app.include_router(invitations_router)
    app.include_router(public_invitations_router)
    app.include_router(general_invite_links_router)
    app.include_router(public_general_invite_links_router)

    # Visitor access
    app.include_router(qr_codes_router)
    app.include_router(access_logs_router)

    # Chat
    app.include_router(chat_router)

    # Health
    app.include_router(health_router)

    return app


# Create the global FastAPI instance
app = create_app()
