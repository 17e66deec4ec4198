"""FastAPI application for the billing API."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace.api.routes import admin_credits, split_billing
from marketplace.config import settings
from marketplace.errors import AppError, ValidationError, error_response

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.api_title,
    description="Credit ledger and split billing for game server hosting",
    version=settings.api_version,
)

# The control panel calls the API from the browser
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=error_response(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid input")
    else:
        message = "Invalid input"
    logger.warning(f"Rejected request to {request.url.path}: {message}")
    error = ValidationError(message)
    return JSONResponse(status_code=error.http_status, content=error_response(error))


app.include_router(admin_credits.router)
app.include_router(split_billing.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
