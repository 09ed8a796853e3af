import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.router import router as v1_router
from app.core.errors import DomainError
from app.core.telemetry import setup_logging, setup_telemetry
from app.schemas.common import ErrorResponse

log = logging.getLogger(__name__)

HTTP_CODES = {401: "unauthorized", 403: "forbidden", 404: "not_found", 405: "method_not_allowed"}

setup_logging()

app = FastAPI(title="Estate Core API", version="0.1.0")

setup_telemetry(app)
app.include_router(v1_router)


def _error(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        log.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return _error(exc.status_code, ErrorResponse(code=exc.code, message=exc.message, details=exc.details))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "type": err.get("type"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return _error(422, ErrorResponse(code="validation_error", message="Invalid request", details=details))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = HTTP_CODES.get(exc.status_code, "error")
    return _error(exc.status_code, ErrorResponse(code=code, message=str(exc.detail)))
