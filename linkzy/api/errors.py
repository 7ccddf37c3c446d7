"""Map domain errors onto JSON responses: {"error": message}."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from linkzy.core.errors import LinkzyError

import structlog

logger = structlog.get_logger()


async def linkzy_error_handler(request: Request, exc: LinkzyError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": "Server error"})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("store_failure", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"error": "Server error"})


def install_error_handlers(app: FastAPI):
    app.add_exception_handler(LinkzyError, linkzy_error_handler)
    app.add_exception_handler(SQLAlchemyError, store_error_handler)
