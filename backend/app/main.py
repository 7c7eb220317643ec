"""FastAPI application entry point."""
import stripe
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.logging import get_logger, setup_logging
from app.api.routes import account, admin, checkout, content, downloads, health, stripe_webhook
from app.integrations.clerk_api import IdentityProviderError
from app.integrations.strapi_api import CMSError

# Setup logging
setup_logging()
logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Checkout, billing and account API for The Piped Peony",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    message = "Missing or invalid fields"
    if fields:
        message = f"{message}: {', '.join(fields)}"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(stripe.StripeError)
async def stripe_error(request: Request, exc: stripe.StripeError):
    logger.error("Unhandled Stripe error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": exc.user_message or "Payment provider error"})


@app.exception_handler(IdentityProviderError)
async def identity_error(request: Request, exc: IdentityProviderError):
    logger.error("Unhandled Clerk error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Identity provider error"})


@app.exception_handler(CMSError)
async def cms_error(request: Request, exc: CMSError):
    logger.error("Unhandled CMS error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Content service error"})


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(checkout.router)
app.include_router(stripe_webhook.router)
app.include_router(downloads.router)
app.include_router(account.router)
app.include_router(content.router)
app.include_router(admin.router)


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": settings.PROJECT_NAME, "version": "1.0.0"}
