import gzip
import io
import threading
import zipfile

import pytest

from conftest import ACME_BETA_ROWS, manifest_bytes
from shipping_analytics.core.errors import DecodeError, NoDataLoaded, NoTabularEntry, UnsupportedFormat
from shipping_analytics.services.dataset import DatasetHandle, find_existing_dataset
from shipping_analytics.services.store import ShipmentStore


def test_new_handle_has_no_data():
    dataset = DatasetHandle()
    assert dataset.loaded is False
    assert dataset.record_count == 0
    with pytest.raises(NoDataLoaded):
        dataset.snapshot()


def test_load_publishes_store_and_index_together():
    dataset = DatasetHandle()
    count = dataset.load(io.BytesIO(manifest_bytes(ACME_BETA_ROWS)), "plain", source_name="acme.csv")

    snapshot = dataset.snapshot()
    assert count == 3
    assert dataset.loaded is True
    assert dataset.record_count == 3
    assert snapshot.source_name == "acme.csv"
    assert snapshot.store.count() == 3
    assert set(snapshot.index) == {"Acme", "Beta"}


def test_failed_load_keeps_last_good_snapshot():
    dataset = DatasetHandle()
    dataset.load(io.BytesIO(manifest_bytes(ACME_BETA_ROWS)), "plain")
    before = dataset.snapshot()

    with pytest.raises(DecodeError):
        dataset.load(io.BytesIO(b"not gzip at all"), "gzip")

    assert dataset.snapshot() is before
    assert dataset.record_count == 3


def test_failed_first_load_leaves_handle_empty():
    dataset = DatasetHandle()
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("notes.txt", "no data here")

    with pytest.raises(NoTabularEntry):
        dataset.load(io.BytesIO(buffer.getvalue()), "zip")
    assert dataset.loaded is False


def test_new_load_replaces_everything():
    dataset = DatasetHandle()
    dataset.load(io.BytesIO(manifest_bytes(ACME_BETA_ROWS)), "plain")
    dataset.load(io.BytesIO(manifest_bytes([{"Consignee": "Gamma"}])), "plain")

    snapshot = dataset.snapshot()
    assert snapshot.store.count() == 1
    assert list(snapshot.index) == ["Gamma"]


def test_loading_same_source_twice_is_idempotent():
    dataset = DatasetHandle()
    payload = manifest_bytes(ACME_BETA_ROWS)
    dataset.load(io.BytesIO(payload), "plain")
    first = dataset.snapshot().index
    dataset.load(io.BytesIO(payload), "plain")
    second = dataset.snapshot().index

    assert list(first) == list(second)
    for name, group in first.items():
        other = second[name]
        assert group.shipment_count == other.shipment_count
        assert group.total_weight == other.total_weight
        assert group.carriers == other.carriers
        assert group.commodities == other.commodities
        assert group.ports == other.ports
        assert (group.first_activity, group.last_activity) == (other.first_activity, other.last_activity)


def test_load_path_detects_format(tmp_path):
    path = tmp_path / "shipping-data.gz"
    path.write_bytes(gzip.compress(manifest_bytes(ACME_BETA_ROWS)))

    dataset = DatasetHandle()
    assert dataset.load_path(path) == 3
    assert dataset.snapshot().source_name == "shipping-data.gz"


def test_load_path_rejects_unknown_extension(tmp_path):
    path = tmp_path / "shipping-data.xlsx"
    path.write_bytes(b"")
    with pytest.raises(UnsupportedFormat):
        DatasetHandle().load_path(path)


def test_handles_are_independent():
    first, second = DatasetHandle(), DatasetHandle()
    first.load(io.BytesIO(manifest_bytes(ACME_BETA_ROWS)), "plain")
    assert first.loaded
    assert not second.loaded


def test_concurrent_loads_are_serialized():
    dataset = DatasetHandle()
    payloads = [manifest_bytes([{"Consignee": f"C{i}"}] * (i + 1)) for i in range(8)]
    errors = []

    def load(payload):
        try:
            dataset.load(io.BytesIO(payload), "plain")
        except Exception as e:  # pragma: no cover - surfaced by the assertion below
            errors.append(e)

    threads = [threading.Thread(target=load, args=(p,)) for p in payloads]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    snapshot = dataset.snapshot()
    # Whatever load won, store and index come from the same source
    (name,) = snapshot.index
    assert snapshot.index[name].shipment_count == snapshot.store.count()


def test_find_existing_dataset_checks_extensions_in_order(tmp_path):
    assert find_existing_dataset(tmp_path, "shipping-data", [".csv", ".gz", ".zip"]) is None

    (tmp_path / "shipping-data.zip").write_bytes(b"")
    (tmp_path / "shipping-data.gz").write_bytes(b"")
    found = find_existing_dataset(tmp_path, "shipping-data", [".csv", ".gz", ".zip"])
    assert found == tmp_path / "shipping-data.gz"


def test_store_replace_swaps_whole_sequence():
    store = ShipmentStore()
    assert store.loaded is False
    assert store.count() == 0

    store.replace([{"Consignee": "Acme"}])
    first = store.all()
    store.replace([{"Consignee": "Beta"}, {"Consignee": "Gamma"}])

    assert store.loaded is True
    assert len(first) == 1
    assert [r["Consignee"] for r in store.all()] == ["Beta", "Gamma"]
    assert isinstance(store.all(), tuple)


def test_store_replace_failure_keeps_old_records():
    store = ShipmentStore([{"Consignee": "Acme"}])

    def broken():
        yield {"Consignee": "Beta"}
        raise DecodeError("stream ended early")

    with pytest.raises(DecodeError):
        store.replace(broken())
    assert [r["Consignee"] for r in store.all()] == ["Acme"]


def test_on_commit_runs_under_the_load_lock_after_publishing():
    dataset = DatasetHandle()
    seen = []

    def on_commit(snapshot):
        seen.append((dataset._load_lock.locked(), dataset.snapshot() is snapshot, snapshot.store.count()))

    dataset.load(io.BytesIO(manifest_bytes(ACME_BETA_ROWS)), "plain", on_commit=on_commit)
    assert seen == [(True, True, 3)]


def test_on_commit_is_skipped_when_the_load_fails():
    dataset = DatasetHandle()
    calls = []

    with pytest.raises(DecodeError):
        dataset.load(io.BytesIO(b"not gzip"), "gzip", on_commit=calls.append)
    assert calls == []
