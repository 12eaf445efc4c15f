"""
OAuth App Marketplace Server

This FastAPI application lets users register OAuth client applications,
issue and rotate their client credentials, attach pricing plans, collect
reviews and browse a public marketplace of published apps.

Key Features:
- Application registration with absolute homepage and callback URLs
- Client credential issuance and atomic regeneration
- Pricing plans with orphan flagging of subscriptions on deletion
- One review per user per application, with rating summaries
- Marketplace listing with search, top-rated and recent views
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..shared.config import settings
from ..shared.errors import MarketplaceError
from ..shared.logging_utils import ComponentType, create_logger
from ..shared.security import SecurityHeaders
from .routes import auth_router, marketplace_store, router, session_store, user_store

logger = create_logger(ComponentType.MARKETPLACE.value)

app = FastAPI(
    title="OAuth App Marketplace",
    description="""
    Register OAuth client applications and publish them to a marketplace.

    **Key Endpoints:**
    - `/login` - Open a bearer session for a demo account
    - `/api/oauth-apps` - Manage your applications
    - `/api/oauth-apps/{id}/credentials` - Issue or regenerate client credentials
    - `/api/oauth-apps/{id}/reviews/summary` - Rating summary of an application
    - `/api/oauth-apps/marketplace/list` - Browse published applications
    - `/health` - Health check endpoint

    **Demo Accounts:**
    - alice / password123
    - bob / secret456
    - carol / mypass789
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    license_info={
        "name": "MIT License",
        "url": "https://opensource.org/licenses/MIT",
    },
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)


@app.middleware("http")
async def add_security_headers(request, call_next):
    """
    Add security headers to all HTTP responses.

    Credential responses carry client secrets, so every response is marked
    as not cacheable.
    """
    response = await call_next(request)

    for header_name, header_value in SecurityHeaders.get_api_security_headers().items():
        response.headers[header_name] = header_value

    response.headers["X-API-Version"] = "1.0.0"
    return response


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    """
    Translate domain errors into {error, error_description} responses.

    Server-side failures (credential generation) are logged as errors for
    operators; client errors are logged as plain rejections.
    """
    details = {
        "method": request.method,
        "path": str(request.url.path),
        "status_code": exc.status_code
    }

    if exc.status_code >= 500:
        logger.log_error(exc.error_code, exc.description, details)
    else:
        logger.log_message(
            ComponentType.MARKETPLACE.value, ComponentType.CLIENT.value,
            "Request Rejected",
            {"error": exc.error_code, **details}
        )

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring server status.

    Returns:
        JSONResponse: Server health status and record counts
    """
    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "service": "OAuth App Marketplace",
            "version": "1.0.0",
            "storage": marketplace_store.get_storage_statistics(),
            "active_sessions": session_store.get_active_sessions_count()
        }
    )


@app.get("/",
         summary="Marketplace Server Information",
         description="Get information about the marketplace server and available endpoints.")
async def root():
    """Service information with endpoint overview and demo accounts."""
    return JSONResponse(
        content={
            "service": "OAuth App Marketplace",
            "version": "1.0.0",
            "endpoints": {
                "login": {"url": "/login", "method": "POST"},
                "apps": {"url": "/api/oauth-apps/", "method": "GET, POST"},
                "credentials": {"url": "/api/oauth-apps/{id}/credentials", "method": "POST"},
                "pricing_plans": {"url": "/api/oauth-apps/{id}/pricing-plans", "method": "GET, POST"},
                "reviews": {"url": "/api/oauth-apps/{id}/reviews", "method": "GET, POST"},
                "review_summary": {"url": "/api/oauth-apps/{id}/reviews/summary", "method": "GET"},
                "marketplace": {"url": "/api/oauth-apps/marketplace/list", "method": "GET"},
                "health": {"url": "/health", "method": "GET"}
            },
            "demo_accounts": user_store.get_demo_accounts(),
            "documentation": {
                "interactive_docs": "/docs",
                "redoc": "/redoc"
            }
        }
    )


app.include_router(auth_router)
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    logger.log_startup(settings.port, {
        "host": settings.host,
        "docs_url": f"http://localhost:{settings.port}/docs"
    })

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
