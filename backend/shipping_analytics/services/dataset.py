"""
The active dataset: one Store + Consignee Index pair, replaced as a unit.

A load decodes the source, fills a fresh store, builds a fresh index and only
then publishes both through a single reference assignment. Readers take that
reference once per query and never see a store and an index from different
loads. Loads are serialized with a lock; readers never lock.
"""

import os
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from shipping_analytics.core.errors import NoDataLoaded
from shipping_analytics.logging_config import get_logger
from shipping_analytics.metrics import (
    dataset_consignees,
    dataset_load_duration_seconds,
    dataset_loads_total,
    dataset_records,
)
from shipping_analytics.services.consignee_index import ConsigneeIndex, build_index
from shipping_analytics.services.store import ShipmentStore
from shipping_analytics.utils.manifest_decoder import ManifestFormat, ManifestSource, decode_records

logger = get_logger(__name__)


@dataclass(frozen=True)
class DatasetSnapshot:
    store: ShipmentStore
    index: ConsigneeIndex
    source_name: Optional[str] = None
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class DatasetHandle:
    """Owns the currently published snapshot and the load path that replaces it."""

    def __init__(self):
        self._snapshot: Optional[DatasetSnapshot] = None
        self._load_lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def record_count(self) -> int:
        snapshot = self._snapshot
        return snapshot.store.count() if snapshot else 0

    def snapshot(self) -> DatasetSnapshot:
        """
        Returns the active snapshot.

        Raises:
            NoDataLoaded: if no load has succeeded yet.
        """
        snapshot = self._snapshot
        if snapshot is None:
            raise NoDataLoaded()
        return snapshot

    def load(
        self,
        source: ManifestSource,
        fmt: Union[ManifestFormat, str],
        source_name: Optional[str] = None,
        on_commit: Optional[Callable[[DatasetSnapshot], None]] = None,
    ) -> int:
        """
        Decodes a manifest and publishes it as the active dataset.

        On any decode failure the previously published snapshot stays active.
        on_commit runs right after the new snapshot is published, still under
        the load lock, so side effects tied to a load (such as persisting the
        source file) happen in the same order as the loads themselves.

        Returns:
            int: Number of records loaded.

        Raises:
            DecodeError: if the source cannot be decoded (NoTabularEntry for a
                zip without a .csv entry).
        """
        fmt = ManifestFormat(fmt)
        if source_name is None and isinstance(source, (str, os.PathLike)):
            source_name = Path(source).name

        with self._load_lock:
            start_time = time.time()
            logger.info(
                "Dataset load started",
                extra={"extra_fields": {"source": source_name, "format": fmt.value}},
            )
            try:
                snapshot = self._build(decode_records(source, fmt), source_name)
            except Exception as e:
                duration = time.time() - start_time
                dataset_load_duration_seconds.observe(duration)
                dataset_loads_total.labels(status="error", format=fmt.value).inc()
                logger.error(
                    "Dataset load failed",
                    extra={
                        "extra_fields": {
                            "source": source_name,
                            "format": fmt.value,
                            "error_type": type(e).__name__,
                            "error": str(e),
                        }
                    },
                )
                raise

            self._snapshot = snapshot
            if on_commit is not None:
                on_commit(snapshot)

            duration = time.time() - start_time
            dataset_load_duration_seconds.observe(duration)
            dataset_loads_total.labels(status="success", format=fmt.value).inc()
            dataset_records.set(snapshot.store.count())
            dataset_consignees.set(len(snapshot.index))
            logger.info(
                f"Loaded {snapshot.store.count()} records from {source_name}",
                extra={
                    "extra_fields": {
                        "records": snapshot.store.count(),
                        "consignees": len(snapshot.index),
                        "duration_seconds": duration,
                    }
                },
            )
            return snapshot.store.count()

    def load_path(self, path: Union[str, os.PathLike]) -> int:
        """Loads a file, taking the format from its extension."""
        return self.load(path, ManifestFormat.from_filename(os.fspath(path)))

    @staticmethod
    def _build(records: Iterable, source_name: Optional[str]) -> DatasetSnapshot:
        store = ShipmentStore()
        store.replace(records)
        index = build_index(store.all())
        return DatasetSnapshot(store=store, index=index, source_name=source_name)


def find_existing_dataset(upload_dir: Union[str, os.PathLike], basename: str, extensions: Iterable[str]) -> Optional[Path]:
    """First '<basename><ext>' present in upload_dir, checking extensions in order."""
    for extension in extensions:
        candidate = Path(upload_dir) / f"{basename}{extension}"
        if candidate.exists():
            return candidate
    return None
