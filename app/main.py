import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from importlib.util import find_spec
from os import environ

import logfire
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.errors import app_error_handler
from app.app_config import AppEnvironConfig, get_app_environ_config
from app.schemas.init_schemas import init_schema
from app.shared.api.utils import E_INVALID_PARAMS, api_failure, init_logger, load_routes, make_response
from app.shared.storage.mongo import get_mongo_manager
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

PYMONGO_INSTRUMENTATION = "opentelemetry.instrumentation.pymongo"


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each HTTP request with a short id and its duration.

    WebSocket traffic does not pass through here; the relay logs it per connection.
    """

    async def dispatch(self, request: Request, call_next):  # type: ignore
        request_id = uuid.uuid4().hex[:8]
        started = time.perf_counter()
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.opt(exception=True).error(
                "[{}] {} {} failed after {:.2f}ms", request_id, request.method, path, elapsed_ms
            )
            failure = api_failure(
                errcode=AppErrorCode.E_INTERNAL_ERROR.value,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return make_response(failure, status_code=HttpStatusCode.INTERNAL_SERVER_ERROR)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "[{}] {} {} -> {} in {:.2f}ms", request_id, request.method, path, response.status_code, elapsed_ms
        )
        return response


async def app_validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    logger.warning("Validation error on {} {}: {}", request.method, request.url.path, errors)
    return make_response(api_failure(E_INVALID_PARAMS, errmesg=str(errors)), status_code=422)


def log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Stray task failures are logged; the process keeps serving other connections."""
    exc = context.get("exception")
    if exc is not None:
        logger.opt(exception=exc).error("Unhandled loop error: {}", context.get("message"))
    else:
        logger.error("Unhandled loop error: {}", context.get("message"))


def init_logfire(server: FastAPI, cfg: AppEnvironConfig) -> None:
    logger.info("Logfire initializing")

    logfire.configure(
        token=cfg.LOGFIRE_TOKEN,
        service_name="live-feed-relay",
        service_version=environ.get("BUILD_COMMIT") or "dev",
    )

    logger.info("Logfire instrument fastapi")
    logfire.instrument_fastapi(server, capture_headers=True)

    # Shipped by the observability extra only
    if find_spec(PYMONGO_INSTRUMENTATION) is None:
        logger.warning("Logfire mongo instrumentation not installed, skipping")
        return

    logger.info("Logfire instrument mongo")
    logfire.instrument_pymongo(capture_statement=cfg.DEBUG)


@asynccontextmanager
async def lifespan(server: FastAPI):
    init_logger()

    logger.info("Application startup...")

    asyncio.get_running_loop().set_exception_handler(log_loop_exception)

    # Initialize MongoDB schemas and Beanie ODM
    await init_schema()

    load_routes(server, "/api/v1")

    cfg = get_app_environ_config()
    if cfg.DEMO_MODE:
        logger.info("DEMO_MODE enabled: feeds are synthetic")
    else:
        # Fail at startup rather than on the first monitoring request
        from app.services.feed import tiktok_client  # noqa: F401
    if not cfg.ADMIN_PASSWORD:
        logger.warning("ADMIN_PASSWORD not set: admin login is disabled")

    if cfg.LOGFIRE_ENABLE:
        init_logfire(server, cfg)

    yield

    logger.info("Application shutdown...")

    await get_mongo_manager().close_all()


app = FastAPI(
    version="1.0",
    title="Live Feed Relay",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

app.add_middleware(HTTPLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,  # type: ignore
    allow_origins=get_app_environ_config().API_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, app_validation_exception_handler)  # type: ignore
app.add_exception_handler(AppError, app_error_handler)  # type: ignore


def build_uvicorn_kwargs():
    cfg = get_app_environ_config()
    # Relay sessions live in process memory, so a single worker serves everything
    kwargs = {
        "host": cfg.API_HOST,
        "port": cfg.API_PORT,
        "workers": 1,
        "reload": cfg.DEBUG,
        "log_level": "debug" if cfg.DEBUG else "info",
    }

    return kwargs


if __name__ == "__main__":
    uvicorn.run("app.main:app", **build_uvicorn_kwargs())
