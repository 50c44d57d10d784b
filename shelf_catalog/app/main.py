import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from shelf_catalog.config import MAX_BATCH_SIZE, Settings, configure_logging, load_settings
from shelf_catalog.core.aggregator import MetadataAggregator
from shelf_catalog.core.ingest import bulk_add_books
from shelf_catalog.core.pipeline import DetectionPipeline
from shelf_catalog.errors import (
    BatchValidationError,
    DetectionError,
    ServiceConfigurationError,
    error_response,
)
from shelf_catalog.schemas import DetectionResult, ProviderBook
from shelf_catalog.storage import SqliteCatalog

logger = logging.getLogger(__name__)


class BulkAddRequest(BaseModel):
    books: List[Dict[str, Any]]


class SearchResponse(BaseModel):
    query: str
    provider: str
    results: List[ProviderBook]
    count: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = load_settings()
    configure_logging(settings.log_level)
    return settings


@lru_cache(maxsize=1)
def get_catalog() -> SqliteCatalog:
    return SqliteCatalog(get_settings().catalog_db_path)


@lru_cache(maxsize=1)
def get_aggregator() -> MetadataAggregator:
    return MetadataAggregator.from_settings(get_settings())


@lru_cache(maxsize=1)
def _build_pipeline() -> DetectionPipeline:
    return DetectionPipeline.from_settings(get_settings(), get_catalog())


def get_pipeline() -> Optional[DetectionPipeline]:
    # None when no OCR/inference backend is configured; detect reports it per request
    try:
        return _build_pipeline()
    except ServiceConfigurationError as e:
        logger.error("Detection pipeline unavailable: %s", e)
        return None


def _detection_error(code: str) -> JSONResponse:
    err = DetectionError(code)
    return JSONResponse(status_code=err.status_code, content={"success": False, "error": error_response(code)})


app = FastAPI(title="Shelf Catalog API")


@app.get("/")
async def root(aggregator: MetadataAggregator = Depends(get_aggregator)):
    return {"status": "ok", "providers": aggregator.list_providers()}


@app.get("/providers")
async def providers(aggregator: MetadataAggregator = Depends(get_aggregator)):
    return {"providers": aggregator.list_providers()}


@app.get("/api/search", response_model=SearchResponse)
async def search(
    q: str = Query(..., min_length=1),
    provider: str = "auto",
    max_results: int = Query(10, ge=1, le=40),
    aggregator: MetadataAggregator = Depends(get_aggregator),
):
    try:
        results = await aggregator.search_books(q, provider=provider, max_results=max_results)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return SearchResponse(query=q, provider=provider, results=results, count=len(results))


@app.post("/api/books/detect", response_model=DetectionResult, response_model_by_alias=True)
async def detect_books(
    image: UploadFile = File(...),
    x_family_id: Optional[str] = Header(None),
    pipeline: Optional[DetectionPipeline] = Depends(get_pipeline),
):
    if pipeline is None:
        return _detection_error("SERVICE_MISCONFIGURED")
    data = await image.read()
    try:
        return await pipeline.detect(data, family_id=x_family_id)
    except DetectionError as e:
        logger.warning("Detection failed: %s", e)
        return _detection_error(e.code)


@app.post("/api/books/bulk-add")
def bulk_add(
    req: BulkAddRequest,
    x_family_id: Optional[str] = Header(None),
    catalog: SqliteCatalog = Depends(get_catalog),
):
    if not x_family_id:
        raise HTTPException(status_code=400, detail="X-Family-Id header is required")
    if len(req.books) > MAX_BATCH_SIZE:
        raise HTTPException(status_code=400, detail=f"Maximum {MAX_BATCH_SIZE} books per batch")
    try:
        result = bulk_add_books(catalog, x_family_id, req.books)
    except BatchValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_response()
