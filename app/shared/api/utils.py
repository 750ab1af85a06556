import sys
from functools import lru_cache
from importlib import import_module
from os import environ
from pathlib import Path
from traceback import TracebackException
from typing import Any, Literal
from uuid import uuid4

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from ..config import config

E_INTERNAL = 'E_INTERNAL_ERROR'
E_INVALID_PARAMS = 'E_INVALID_PARAMS'

APP_ROOT = Path(__file__).parent.parent.parent
ROUTE_FOLDERS = (APP_ROOT / 'shared' / 'api', APP_ROOT / 'api')


def build_version() -> str:
    return environ.get('BUILD_COMMIT') or 'dev'


class ApiResponse(BaseModel):
    version: str | None = Field(default_factory=build_version)


class ApiSuccess(ApiResponse):
    success: Literal[True] = True
    results: Any = "OK"


class ApiFailure(ApiResponse):
    success: Literal[False] = False
    errcode: str = E_INTERNAL
    erresid: str = Field(default_factory=lambda: uuid4().hex[:10])
    errmesg: str = 'We are sorry, an error occurred.'


def api_failure(errcode: str | None = None, errmesg: Exception | str | None = None) -> ApiFailure:
    """Build a failure envelope and log it under its residue id."""
    fields: dict[str, str] = {}
    if errcode:
        fields['errcode'] = errcode
    if isinstance(errmesg, Exception):
        fields['errmesg'] = ''.join(TracebackException.from_exception(errmesg).format())
    elif errmesg:
        fields['errmesg'] = errmesg

    failure = ApiFailure(**fields)
    logger.opt(depth=1).warning('{} {} {}', failure.errcode, failure.erresid, failure.errmesg)
    return failure


def make_response(results: BaseModel | dict, *, status_code: int | None = None) -> ORJSONResponse:
    if status_code is None:
        if isinstance(results, ApiFailure):
            status_code = 500 if results.errcode == E_INTERNAL else 400
        else:
            status_code = 200

    content = results.model_dump() if isinstance(results, BaseModel) else results
    return ORJSONResponse(status_code=status_code, content=content)


def load_routes(app: FastAPI, prefix: str):
    """Mount the `router` of every module under the route folders, skipping API_DISABLED names."""
    disabled = [x.strip() for x in config.get('API_DISABLED', '').split(',') if x.strip()]
    if disabled:
        logger.info('disabled routes: {}', disabled)

    for folder in ROUTE_FOLDERS:
        for path in sorted(folder.rglob('*.py')):
            if path.name == '__init__.py':
                continue

            name = '.'.join(path.relative_to(APP_ROOT.parent).with_suffix('').parts)
            if any(f'.{d}' in name for d in disabled):
                logger.warning('disabled route in {}', name)
                continue

            try:
                module = import_module(name)
            except ImportError as e:
                logger.warning('Failed to import {}: {}', name, e)
                continue

            router = getattr(module, 'router', None)
            if router is not None:
                app.include_router(router, prefix=prefix)
                logger.info('Added routes in {}', name)

    for route in app.routes:
        methods = ','.join(sorted(getattr(route, 'methods', None) or ['WS']))
        logger.info('Loaded route: {:<12} {:<40} {}', methods, route.path, getattr(route, 'name', ''))


@lru_cache
def get_worker_info() -> tuple[str, str]:
    worker_name = environ.get('WORKER_NAME', 'live-feed-relay')
    parts = build_version().split('-')
    commit_id = parts[1] if len(parts) > 1 else 'dev'
    return worker_name, commit_id


def init_logger():
    logger.remove()

    worker_name, commit_id = get_worker_info()
    debug = (config.get('DEBUG') or '').lower() == 'true'

    if debug:
        logger_format = (
            f'<yellow>{worker_name}:{commit_id}</yellow> | '
            '<green>{time:MM-DD HH:mm:ss.SSS}</green> | '
            '<level>{level: <8}</level> | '
            '<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | '
            '<level>{message}</level>'
        )
    else:
        logger_format = (
            f'{worker_name}:{commit_id} | '
            '{time:MM-DD HH:mm:ss.SSS} | '
            '{level: <8} | '
            '{name}:{function}:{line} | '
            '{message}'
        )
    logger.add(sys.stderr, level='DEBUG' if debug else 'INFO', format=logger_format, colorize=debug)
