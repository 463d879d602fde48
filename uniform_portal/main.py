import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from uniform_portal.errors import (
    CipherMismatchError,
    ConsistencyError,
    NotFoundError,
    StoreTimeoutError,
    UnknownCategoryError,
)
from uniform_portal.logging_config import configure_logging
from uniform_portal.routers import employees

configure_logging()
logger = structlog.get_logger()

app = FastAPI(title='Uniform Eligibility Portal')

app.include_router(employees.router)


@app.exception_handler(NotFoundError)
def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={'detail': str(exc)})


@app.exception_handler(UnknownCategoryError)
def unknown_category_handler(request: Request, exc: UnknownCategoryError):
    return JSONResponse(status_code=422, content={'detail': str(exc)})


@app.exception_handler(StoreTimeoutError)
def store_timeout_handler(request: Request, exc: StoreTimeoutError):
    return JSONResponse(
        status_code=status.HTTP_504_GATEWAY_TIMEOUT,
        content={'detail': 'Store did not respond in time', 'retryable': True},
    )


@app.exception_handler(CipherMismatchError)
def cipher_mismatch_handler(request: Request, exc: CipherMismatchError):
    logger.error('Cipher mismatch while serving request', path=request.url.path, scheme=exc.scheme)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={'detail': 'Record cannot be decrypted'})


@app.exception_handler(ConsistencyError)
def consistency_handler(request: Request, exc: ConsistencyError):
    logger.error('Store consistency violation', path=request.url.path, error=str(exc))
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={'detail': 'Data consistency error'})


@app.get('/healthz')
def healthz() -> dict:
    return {'status': 'ok'}
