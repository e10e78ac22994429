import logging

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .core.config import get_settings
from .core.db import Base, engine
from .core.errors import QRCodeAppError, QRCodeNotFound, ShopSessionNotFound
from .core.responses import ErrorCodes, error_response
from .routes_public import router as public_router
from .routes_qrcodes import router as qr_codes_router


settings = get_settings()
app = FastAPI(title="QR Code Storefront Backend")
logger = logging.getLogger(__name__)

logging.getLogger("qr_api").setLevel(settings.log_level.upper())

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QRCodeAppError)
async def handle_app_error(request: Request, exc: QRCodeAppError):
    if isinstance(exc, ShopSessionNotFound):
        logger.info(f"401 on {request.method} {request.url.path}: {exc.reason}")
        return PlainTextResponse(exc.message, status_code=status.HTTP_401_UNAUTHORIZED)
    if isinstance(exc, QRCodeNotFound):
        return Response(status_code=status.HTTP_404_NOT_FOUND)

    if exc.status_code >= 500:
        logger.error(f"{exc.kind} failure on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message, exc.details),
    )


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    # Same envelope as body validation; the offending input is not echoed back
    errors = [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response(ErrorCodes.VALIDATION_ERROR, "Invalid request", {"errors": errors}),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response(ErrorCodes.INTERNAL_ERROR, str(exc) or exc.__class__.__name__),
    )


@app.on_event("startup")
async def on_startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@app.get("/health")
async def health():
    return {"status": "ok"}


app.include_router(qr_codes_router)
app.include_router(public_router)
