import logging
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from .api.api import router as api_router
from .api.endpoints.realtime import router as realtime_router
from .core.config import get_settings
from .core.exceptions import SwapSevaError

# Load environment variables
load_dotenv()

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name} in {settings.environment} environment")
    yield
    logger.info("Shutting down")

app = FastAPI(
    title=settings.app_name,
    description="""
    API for the SwapSeva barter marketplace.

    ## Trade flow

    1. `POST /api/users/connect` sends a trade request for another user's offering.
    2. The recipient answers with `POST /api/notifications/accept-trade` (picking one
       of the offered items) or `POST /api/notifications/decline-trade`.
    3. The requester confirms with `POST /api/notifications/confirm-trade`, which
       opens a chat and returns its id.

    ## Authentication

    Send the access token from `/api/auth/login` as `Authorization: Bearer <token>`.
    Realtime events are delivered on the `/ws` WebSocket after sending `{"token": ...}`.
    """,
    version="1.0.0",
    debug=settings.debug,
    lifespan=lifespan,
    swagger_ui_parameters={
        "persistAuthorization": True,
        "displayRequestDuration": True,
        "docExpansion": "none",
    }
)

# Configure CORS
# Default origins for development
origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    settings.frontend_url,
]

# Add production origins if in production environment
if settings.environment == "production":
    origins.extend([
        "https://swapseva.app",
        "https://www.swapseva.app",
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(api_router)
app.include_router(realtime_router)

# Custom OpenAPI schema
def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "bearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "Enter the token without the 'Bearer' prefix"
        }
    }

    for path, operations in openapi_schema.get("paths", {}).items():
        # Public endpoints
        if path in ("/", "/health") or path.endswith("/login"):
            continue
        for method in operations:
            if method != "parameters":
                operations[method]["security"] = [{"bearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema

app.openapi = custom_openapi

@app.get("/")
async def root():
    return {"message": f"Welcome to the {settings.app_name}", "environment": settings.environment}

@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.environment}

@app.exception_handler(SwapSevaError)
async def swapseva_exception_handler(request: Request, exc: SwapSevaError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=exc.headers,
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": message, "errors": jsonable_errors(errors)}
    )

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error"}
    )

def jsonable_errors(errors):
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in errors
    ]
