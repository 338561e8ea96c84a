# ============================================================================
# api/main.py
# ============================================================================
"""
FastAPI Backend for Blood-Test Ingestion

Runs on API_PORT (3000 by default):

    uvicorn api.main:app --port 3000

Endpoints:
- GET    /                          liveness
- GET    /api/health                liveness for monitoring
- POST   /api/parse-pdf             extraction only, raw records back
- POST   /api/blood-tests           full ingestion for one owner
- GET    /api/blood-tests           list an owner's results
- DELETE /api/blood-tests/{id}      delete one of the owner's results
- POST   /api/uploads               store each original PDF, then ingest it
- GET    /storage/{bucket}/{key}    stored originals
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from bloodwork_ingestion.config import base_settings, logging_settings
from bloodwork_ingestion.core.context.enums import UploadStatus
from bloodwork_ingestion.core.context.upload_task import SelectedFile
from bloodwork_ingestion.core.ingestion_service import IngestionService, build_ingestion_service
from bloodwork_ingestion.core.object_store import LocalObjectStore
from bloodwork_ingestion.core.upload_orchestrator import UploadSession
from bloodwork_ingestion.utils.exceptions import (
    BloodworkIngestionError,
    ConfigurationError,
    DuplicateDocumentError,
    ExtractionError,
    InvalidDocumentError,
    NoResultsExtractedError,
    NotFoundError,
    PersistenceError,
    RasterizationError,
)
from bloodwork_ingestion.utils.logging import setup_logging

logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS_CODES = [
    (InvalidDocumentError, 400),
    (NotFoundError, 404),
    (DuplicateDocumentError, 409),
    (RasterizationError, 422),
    (NoResultsExtractedError, 422),
    (ExtractionError, 502),
    (ConfigurationError, 503),
    (PersistenceError, 500),
]


def status_code_for(error: BloodworkIngestionError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and wire the ingestion service once at startup."""
    setup_logging(
        level=logging_settings.LOG_LEVEL,
        log_file=logging_settings.LOG_FILE,
        format_json=logging_settings.LOG_JSON,
    )
    base_settings.create_directories()
    app.state.object_store = LocalObjectStore.from_settings(base_settings)

    try:
        app.state.ingestion_service = build_ingestion_service()
        logger.info("Ingestion service ready")
    except ConfigurationError as e:
        # Keep serving health checks; ingestion endpoints answer 503
        logger.error(f"Ingestion service not configured: {e.message}")
        app.state.ingestion_service = None

    yield

    service = getattr(app.state, "ingestion_service", None)
    if service is not None:
        await service.close()


app = FastAPI(
    title="Blood-Test Ingestion API",
    description="Extracts lab results from blood-test PDFs with a vision model",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=base_settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Public URLs handed out by the object store point here
app.mount(
    "/storage",
    StaticFiles(directory=base_settings.STORAGE_ROOT, check_dir=False),
    name="storage",
)


@app.exception_handler(BloodworkIngestionError)
async def ingestion_error_handler(request: Request, exc: BloodworkIngestionError):
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.details})")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.message, "details": exc.details},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Unknown routes and wrong methods answer in the same shape as ingestion errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "details": None},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    logger.info(f"{request.method} {request.url.path} rejected: {details}")
    return JSONResponse(
        status_code=422,
        content={"error": "Invalid request", "details": details},
    )


def get_ingestion_service(request: Request) -> IngestionService:
    service = getattr(request.app.state, "ingestion_service", None)
    if service is None:
        raise ConfigurationError("Ingestion service is not configured")
    return service


def get_object_store(request: Request) -> LocalObjectStore:
    storage = getattr(request.app.state, "object_store", None)
    if storage is None:
        raise ConfigurationError("Object store is not configured")
    return storage


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Blood-Test Ingestion API"}


@app.get("/api/health")
async def health():
    """Health check for monitoring."""
    return {"status": "healthy"}


@app.post("/api/parse-pdf")
async def parse_pdf(
    file: Optional[UploadFile] = File(None),
    service: IngestionService = Depends(get_ingestion_service),
):
    """
    Extract raw lab records from a PDF without storing anything.

    Returns the records exactly as the model described them, in page order.
    """
    if file is None:
        raise InvalidDocumentError("No file uploaded")

    content = await file.read()
    logger.info(f"parse-pdf: {file.filename} ({len(content)} bytes)")

    outcome = await service.parse(content)
    return {
        "success": True,
        "data": [record.to_dict() for record in outcome.records],
        "debug": {
            "fileInfo": {
                "size": len(content),
                "pages": outcome.page_count,
                "totalResults": len(outcome.records),
                "failedPages": [
                    p + 1 for p in sorted(outcome.unrendered_pages + outcome.failed_pages + outcome.unparsed_pages)
                ],
            },
        },
    }


@app.post("/api/blood-tests")
async def ingest_blood_test(
    file: Optional[UploadFile] = File(None),
    owner_id: str = Form(...),
    service: IngestionService = Depends(get_ingestion_service),
):
    """Run the full ingestion for one PDF and return the stored results."""
    if file is None:
        raise InvalidDocumentError("No file uploaded")

    content = await file.read()
    result = await service.ingest(content, file.filename or "upload.pdf", owner_id)
    return result.to_response()


@app.get("/api/blood-tests")
async def list_blood_tests(
    owner_id: str = Query(...),
    test_date: Optional[str] = Query(None),
    service: IngestionService = Depends(get_ingestion_service),
):
    results = await service.store.list_results(owner_id, test_date=test_date)
    return {"success": True, "data": [r.to_dict() for r in results]}


@app.delete("/api/blood-tests/{result_id}")
async def delete_blood_test(
    result_id: str,
    owner_id: str = Query(...),
    service: IngestionService = Depends(get_ingestion_service),
):
    deleted = await service.store.delete_result(result_id, owner_id)
    if not deleted:
        raise NotFoundError("Result not found", details=result_id)
    return {"success": True, "deleted": result_id}


@app.post("/api/uploads")
async def upload_blood_tests(
    files: List[UploadFile] = File(...),
    owner_id: str = Form(...),
    service: IngestionService = Depends(get_ingestion_service),
    storage: LocalObjectStore = Depends(get_object_store),
):
    """
    Store each original PDF, then ingest it.

    Files are handled concurrently and independently; the response holds
    one task per file with its final status (success, error or duplicate).
    """
    selected = [
        SelectedFile(
            name=f.filename or "upload.pdf",
            content=await f.read(),
            content_type=f.content_type or "application/pdf",
        )
        for f in files
    ]

    session = UploadSession(owner_id, storage, service)
    tasks = await session.upload_files(selected)
    return {
        "success": all(t.status is UploadStatus.SUCCESS for t in tasks),
        "data": [t.to_dict() for t in tasks],
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=base_settings.API_HOST, port=base_settings.API_PORT)
