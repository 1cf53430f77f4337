import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import Response

from shipping_analytics.core.config import settings
from shipping_analytics.core.errors import DecodeError, UnsupportedFormat
from shipping_analytics.logging_config import get_logger
from shipping_analytics.metrics import file_upload_bytes
from shipping_analytics.schemas import (
    CarrierSummary,
    CommoditySummary,
    ConsigneeDetail,
    ConsigneeFilters,
    ConsigneePage,
    ConsigneeSortField,
    ConsigneeStats,
    ConsigneeSuggestion,
    RecordSearchResult,
    SortOrder,
    TopConsignee,
    TradeLane,
    UploadResponse,
)
from shipping_analytics.services import queries
from shipping_analytics.services.dataset import DatasetHandle
from shipping_analytics.utils.manifest_decoder import ManifestFormat

logger = get_logger(__name__)

router = APIRouter(prefix="/api")

COPY_CHUNK_BYTES = 1024 * 1024


def get_dataset(request: Request) -> DatasetHandle:
    return request.app.state.dataset


def _save_upload(upload: UploadFile, upload_dir: Path) -> Path:
    """
    Streams the upload into a temporary file inside upload_dir.

    Raises HTTP 413 once more than settings.MAX_UPLOAD_BYTES have been read.
    """
    upload_dir.mkdir(parents=True, exist_ok=True)
    extension = Path(upload.filename or "").suffix.lower()
    fd, temp_name = tempfile.mkstemp(prefix=".upload-", suffix=extension, dir=upload_dir)
    temp_path = Path(temp_name)
    written = 0
    try:
        with os.fdopen(fd, "wb") as out:
            while True:
                chunk = upload.file.read(COPY_CHUNK_BYTES)
                if not chunk:
                    break
                written += len(chunk)
                if written > settings.MAX_UPLOAD_BYTES:
                    raise HTTPException(status_code=413, detail="File exceeds the upload size limit")
                out.write(chunk)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise
    file_upload_bytes.inc(written)
    return temp_path


def _publish_upload(temp_path: Path, upload_dir: Path, extension: str) -> None:
    """Makes the just-loaded file the one reloaded at start-up."""
    target = upload_dir / f"{settings.DATASET_BASENAME}{extension}"
    shutil.move(str(temp_path), target)
    for other in settings.ALLOWED_EXTENSIONS:
        if other != extension:
            (upload_dir / f"{settings.DATASET_BASENAME}{other}").unlink(missing_ok=True)


@router.post("/upload", response_model=UploadResponse)
def upload_dataset(
    csvFile: UploadFile = File(...),
    dataset: DatasetHandle = Depends(get_dataset),
):
    """
    Replaces the active dataset with an uploaded .csv, .gz or .zip manifest.
    """
    filename = csvFile.filename or ""
    try:
        fmt = ManifestFormat.from_filename(filename)
    except UnsupportedFormat as e:
        raise HTTPException(status_code=400, detail=str(e))

    upload_dir = Path(settings.UPLOAD_DIR)
    extension = Path(filename).suffix.lower()
    temp_path = _save_upload(csvFile, upload_dir)
    try:
        # Promoted while the load lock is held so disk and memory agree
        record_count = dataset.load(
            temp_path,
            fmt,
            source_name=filename,
            on_commit=lambda snapshot: _publish_upload(temp_path, upload_dir, extension),
        )
    except DecodeError as e:
        temp_path.unlink(missing_ok=True)
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise

    logger.info(
        "Upload processed",
        extra={"extra_fields": {"filename": filename, "format": fmt.value, "records": record_count}},
    )
    return UploadResponse(success=True, record_count=record_count)


@router.get("/search", response_model=RecordSearchResult)
def search(
    query: Optional[str] = None,
    field: Optional[str] = None,
    dataset: DatasetHandle = Depends(get_dataset),
):
    return queries.search_records(dataset, query, field or None)


@router.get("/analytics/top-consignees", response_model=List[TopConsignee])
def analytics_top_consignees(dataset: DatasetHandle = Depends(get_dataset)):
    return queries.top_consignees(dataset)


@router.get("/analytics/trade-lanes", response_model=List[TradeLane])
def analytics_trade_lanes(dataset: DatasetHandle = Depends(get_dataset)):
    return queries.top_trade_lanes(dataset)


@router.get("/analytics/carriers", response_model=List[CarrierSummary])
def analytics_carriers(
    lane: Optional[str] = None,
    dataset: DatasetHandle = Depends(get_dataset),
):
    return queries.top_carriers(dataset, lane or None)


@router.get("/analytics/commodities", response_model=List[CommoditySummary])
def analytics_commodities(dataset: DatasetHandle = Depends(get_dataset)):
    return queries.top_commodities(dataset)


@router.get("/consignees", response_model=ConsigneePage)
def list_consignees(
    search: Optional[str] = None,
    minShipments: int = Query(0, ge=0),
    commodity: Optional[str] = None,
    port: Optional[str] = None,
    carrier: Optional[str] = None,
    sortBy: ConsigneeSortField = ConsigneeSortField.SHIPMENT_COUNT,
    order: SortOrder = SortOrder.DESC,
    page: int = Query(1, ge=1),
    pageSize: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    dataset: DatasetHandle = Depends(get_dataset),
):
    """
    Filtered, sorted, paginated consignee summaries.
    """
    filters = ConsigneeFilters(
        name=search,
        min_shipments=minShipments,
        commodity=commodity,
        port=port,
        carrier=carrier,
    )
    return queries.list_consignees(dataset, filters, sortBy, order, page, pageSize)


@router.get("/consignees/search", response_model=List[ConsigneeSuggestion])
def consignee_autocomplete(
    q: Optional[str] = None,
    limit: int = Query(settings.AUTOCOMPLETE_LIMIT, ge=1, le=100),
    dataset: DatasetHandle = Depends(get_dataset),
):
    return queries.search_consignee_names(dataset, q, limit)


@router.get("/consignees/export")
def consignee_export(dataset: DatasetHandle = Depends(get_dataset)):
    content = queries.export_consignees(dataset)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="consignees.csv"'},
    )


@router.get("/consignees/stats", response_model=ConsigneeStats)
def consignee_statistics(dataset: DatasetHandle = Depends(get_dataset)):
    return queries.consignee_stats(dataset)


@router.get("/consignee/{name:path}", response_model=ConsigneeDetail)
def consignee_detail(name: str, dataset: DatasetHandle = Depends(get_dataset)):
    return queries.consignee_detail(dataset, name)
