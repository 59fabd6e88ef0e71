import logging
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.httpsredirect import HTTPSRedirectMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from applepayjs.api.api import api_router
from applepayjs.core.config import Settings, settings as default_settings
from applepayjs.core.exceptions import AppException
from applepayjs.core.logging import setup_logging
from applepayjs.services.applepay_client import ApplePayClient
from applepayjs.services.merchant_certificate import MerchantCertificateProvider

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"

GENERIC_ERROR_MESSAGE = "An unexpected error occurred."
INVALID_REQUEST_MESSAGE = "The request body is invalid."

HSTS_HEADER_VALUE = "max-age=31536000"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def handle_app_exception(request: Request, exc: AppException):
        if exc.status_code >= 500:
            # Details stay in the server log only.
            logger.error(
                f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}",
                exc_info=exc.__cause__,
            )
            message = GENERIC_ERROR_MESSAGE
        else:
            message = exc.message
        return JSONResponse(status_code=exc.status_code, content={"error": message})

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        logger.warning(
            f"Invalid request body on {request.method} {request.url.path} "
            f"from {request.client.host if request.client else 'unknown'}"
        )
        return JSONResponse(status_code=400, content={"error": INVALID_REQUEST_MESSAGE})

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": GENERIC_ERROR_MESSAGE})


def create_app(
    settings: Settings | None = None,
    applepay_client: ApplePayClient | None = None,
) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL, json_format=settings.LOG_FORMAT == "json")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.is_development else None,
        redoc_url=None,
    )

    app.state.settings = settings
    app.state.certificate_provider = MerchantCertificateProvider(settings)
    app.state.applepay_client = applepay_client or ApplePayClient(
        timeout=settings.APPLEPAY_GATEWAY_TIMEOUT,
    )

    # Apple Pay JS requires pages to be served over HTTPS
    if settings.is_production:
        app.add_middleware(HTTPSRedirectMiddleware)

        @app.middleware("http")
        async def add_hsts_header(request: Request, call_next):
            response = await call_next(request)
            response.headers.setdefault("Strict-Transport-Security", HSTS_HEADER_VALUE)
            return response

    if settings.allowed_hosts_list != ["*"]:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts_list)

    register_exception_handlers(app)

    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

    # Domain association file for Apple Pay merchant domain verification.
    if settings.WELL_KNOWN_DIRECTORY:
        well_known = Path(settings.WELL_KNOWN_DIRECTORY).expanduser()
        if well_known.is_dir():
            app.mount("/.well-known", StaticFiles(directory=str(well_known)), name="well-known")
        else:
            logger.warning(f"WELL_KNOWN_DIRECTORY {well_known} does not exist; not serving /.well-known")

    app.include_router(api_router)

    logger.info(
        f"{settings.APP_NAME} {settings.APP_VERSION} started ({settings.ENVIRONMENT}), "
        f"certificate source: {type(app.state.certificate_provider.source).__name__}"
    )
    return app


app = create_app()


def run() -> None:
    uvicorn.run(
        "applepayjs.main:app",
        host=default_settings.HOST,
        port=default_settings.PORT,
        reload=False,
        log_level=default_settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
