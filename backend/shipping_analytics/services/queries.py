"""
Read-only queries over the active dataset.

Each function takes the dataset handle, reads its snapshot exactly once and
computes the result in memory. All of them raise NoDataLoaded before the first
successful load.
"""

import csv
import io
import math
from collections import Counter
from typing import Callable, Dict, List, Optional

from shipping_analytics.core import fields
from shipping_analytics.core.config import settings
from shipping_analytics.core.errors import ConsigneeNotFound, EmptyDataset
from shipping_analytics.core.fields import clean, round_half_up
from shipping_analytics.schemas import (
    CarrierSummary,
    CommoditySummary,
    ConsigneeDetail,
    ConsigneeFilters,
    ConsigneePage,
    ConsigneeSortField,
    ConsigneeStats,
    ConsigneeSuggestion,
    ConsigneeSummary,
    LeaderboardEntry,
    RecordSearchResult,
    SortOrder,
    TopConsignee,
    TradeLane,
)
from shipping_analytics.services.consignee_index import ConsigneeGroup
from shipping_analytics.services.dataset import DatasetHandle

EXPORT_COLUMNS = [
    "Name",
    "Total Shipments",
    "Total Weight (kg)",
    "Unique Carriers",
    "Unique Commodities",
    "Origin Ports",
    "Top Commodities",
    "Carriers",
]
EXPORT_LIST_SEPARATOR = "; "


def _contains(haystack: Optional[str], needle: str) -> bool:
    return haystack is not None and needle in haystack.lower()


def _any_contains(values, needle: str) -> bool:
    return any(needle in value.lower() for value in values)


def _summarize(group: ConsigneeGroup) -> ConsigneeSummary:
    return ConsigneeSummary(
        name=group.name,
        shipment_count=group.shipment_count,
        total_weight=round_half_up(group.total_weight),
        unique_carriers=len(group.carriers),
        unique_commodities=len(group.commodities),
        unique_ports=len(group.ports),
        carriers=list(group.carriers),
        commodities=list(group.commodities),
        ports=list(group.ports),
        last_activity=group.last_activity,
    )


_SORT_KEYS: Dict[ConsigneeSortField, Callable[[ConsigneeGroup], object]] = {
    ConsigneeSortField.SHIPMENT_COUNT: lambda group: group.shipment_count,
    ConsigneeSortField.NAME: lambda group: group.name,
    ConsigneeSortField.TOTAL_WEIGHT: lambda group: group.total_weight,
    # Consignees without any dated shipment sort as the oldest
    ConsigneeSortField.LAST_ACTIVITY: lambda group: (
        group.last_activity is not None,
        group.last_activity or 0,
    ),
}


def _by_count_then_name(groups: List[ConsigneeGroup]) -> List[ConsigneeGroup]:
    return sorted(groups, key=lambda group: (-group.shipment_count, group.name))


def list_consignees(
    dataset: DatasetHandle,
    filters: Optional[ConsigneeFilters] = None,
    sort_by: ConsigneeSortField = ConsigneeSortField.SHIPMENT_COUNT,
    order: SortOrder = SortOrder.DESC,
    page: int = 1,
    page_size: Optional[int] = None,
) -> ConsigneePage:
    """
    Filtered, sorted and paginated consignee summaries.

    Filters are applied in order (name, minimum shipments, commodity, port,
    carrier) and combined with AND. Equal sort keys fall back to name
    ascending so pages are reproducible.

    Args:
        dataset: The dataset handle to query.
        filters: Optional filter set; None disables all filters.
        sort_by: Sort field, shipment count by default.
        order: asc or desc, desc by default.
        page: 1-based page number.
        page_size: Items per page; settings.DEFAULT_PAGE_SIZE when omitted.

    Returns:
        ConsigneePage: The requested page and the pagination totals.

    Raises:
        NoDataLoaded: if nothing has been loaded.
        ValueError: if page or page_size is below 1.
    """
    snapshot = dataset.snapshot()
    page_size = settings.DEFAULT_PAGE_SIZE if page_size is None else page_size
    if page < 1:
        raise ValueError("page must be at least 1")
    if page_size < 1:
        raise ValueError("page_size must be at least 1")

    filters = filters or ConsigneeFilters()
    sort_by = ConsigneeSortField(sort_by)
    order = SortOrder(order)

    groups = list(snapshot.index.values())
    if filters.name:
        needle = filters.name.lower()
        groups = [g for g in groups if needle in g.name.lower()]
    if filters.min_shipments > 0:
        groups = [g for g in groups if g.shipment_count >= filters.min_shipments]
    if filters.commodity:
        needle = filters.commodity.lower()
        groups = [g for g in groups if _any_contains(g.commodities, needle)]
    if filters.port:
        needle = filters.port.lower()
        groups = [g for g in groups if _any_contains(g.ports, needle)]
    if filters.carrier:
        needle = filters.carrier.lower()
        groups = [g for g in groups if _any_contains(g.carriers, needle)]

    # Two stable passes: name ascending first, then the primary key.
    groups.sort(key=lambda group: group.name)
    groups.sort(key=_SORT_KEYS[sort_by], reverse=order is SortOrder.DESC)

    total_count = len(groups)
    total_pages = math.ceil(total_count / page_size)
    start = (page - 1) * page_size

    return ConsigneePage(
        consignees=[_summarize(group) for group in groups[start:start + page_size]],
        total_count=total_count,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        has_more=page < total_pages,
    )


def search_consignee_names(
    dataset: DatasetHandle, query: Optional[str], limit: Optional[int] = None
) -> List[ConsigneeSuggestion]:
    """
    Autocomplete: consignees whose name contains the query, busiest first.

    The query is stripped of surrounding whitespace before matching, so "ab "
    searches for "ab". Stripped queries shorter than
    settings.AUTOCOMPLETE_MIN_CHARS return nothing.
    """
    snapshot = dataset.snapshot()
    limit = settings.AUTOCOMPLETE_LIMIT if limit is None else limit
    query = (query or "").strip()
    if len(query) < settings.AUTOCOMPLETE_MIN_CHARS or limit < 1:
        return []

    needle = query.lower()
    matches = [group for group in snapshot.index.values() if needle in group.name.lower()]
    return [
        ConsigneeSuggestion(name=group.name, shipment_count=group.shipment_count)
        for group in _by_count_then_name(matches)[:limit]
    ]


def export_consignees(dataset: DatasetHandle) -> str:
    """
    Every consignee as one CSV row, busiest first.

    Raises:
        NoDataLoaded: if nothing has been loaded.
        EmptyDataset: if the index holds no consignees.
    """
    snapshot = dataset.snapshot()
    if not snapshot.index:
        raise EmptyDataset("No consignees to export")

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for group in _by_count_then_name(list(snapshot.index.values())):
        commodities = list(group.commodities)
        writer.writerow([
            group.name,
            group.shipment_count,
            round_half_up(group.total_weight),
            len(group.carriers),
            len(group.commodities),
            EXPORT_LIST_SEPARATOR.join(group.ports),
            EXPORT_LIST_SEPARATOR.join(commodities[:settings.EXPORT_COMMODITY_LIMIT]),
            EXPORT_LIST_SEPARATOR.join(group.carriers),
        ])
    return buffer.getvalue()


def _leaderboard(counter: Counter) -> List[LeaderboardEntry]:
    ranked = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
    return [LeaderboardEntry(value=value, count=count) for value, count in ranked[:settings.LEADERBOARD_SIZE]]


def consignee_stats(dataset: DatasetHandle) -> ConsigneeStats:
    snapshot = dataset.snapshot()
    groups = snapshot.index.values()

    commodities: Counter = Counter()
    ports: Counter = Counter()
    carriers: Counter = Counter()
    total_shipments = 0
    multi_shipment = 0
    for group in groups:
        total_shipments += group.shipment_count
        if group.shipment_count > 1:
            multi_shipment += 1
        commodities.update(group.commodities.keys())
        ports.update(group.ports.keys())
        carriers.update(group.carriers.keys())

    total_consignees = len(snapshot.index)
    average = round_half_up(total_shipments / total_consignees) if total_consignees else 0

    return ConsigneeStats(
        total_consignees=total_consignees,
        average_shipments_per_consignee=average,
        multi_shipment_consignees=multi_shipment,
        top_commodities=_leaderboard(commodities),
        top_ports=_leaderboard(ports),
        top_carriers=_leaderboard(carriers),
    )


def search_records(dataset: DatasetHandle, query: Optional[str], field: Optional[str] = None) -> RecordSearchResult:
    """
    Case-insensitive substring search over the raw records.

    With a field, only that field is compared and records without a value for
    it never match. Without one, any value may match. An empty query matches
    every record. At most settings.SEARCH_RESULT_LIMIT records are returned,
    together with the full match count.
    """
    snapshot = dataset.snapshot()
    records = snapshot.store.all()

    if query:
        needle = query.lower()
        if field:
            matches = [r for r in records if _contains(r.get(field), needle)]
        else:
            matches = [r for r in records if any(_contains(value, needle) for value in r.values())]
    else:
        matches = list(records)

    return RecordSearchResult(
        results=[dict(record) for record in matches[:settings.SEARCH_RESULT_LIMIT]],
        total_count=len(matches),
    )


def _top(items: Dict[str, dict]) -> List[tuple]:
    ranked = sorted(items.items(), key=lambda item: (-item[1]["count"], item[0]))
    return ranked[:settings.REPORT_TOP_N]


def top_consignees(dataset: DatasetHandle) -> List[TopConsignee]:
    snapshot = dataset.snapshot()

    stats: Dict[str, dict] = {}
    for record in snapshot.store.all():
        name = clean(record.get(fields.CONSIGNEE))
        if name is None:
            continue
        entry = stats.setdefault(name, {"count": 0, "weight": 0.0})
        entry["count"] += 1
        entry["weight"] += fields.parse_weight(record.get(fields.WEIGHT_KG))

    return [
        TopConsignee(name=name, shipment_count=entry["count"], total_weight=round_half_up(entry["weight"]))
        for name, entry in _top(stats)
    ]


def top_trade_lanes(dataset: DatasetHandle) -> List[TradeLane]:
    snapshot = dataset.snapshot()

    lanes: Dict[str, dict] = {}
    for record in snapshot.store.all():
        lane = fields.trade_lane(record)
        if lane is None:
            continue
        entry = lanes.setdefault(
            fields.lane_label(lane), {"lane": lane, "count": 0, "weight": 0.0, "carriers": {}}
        )
        entry["count"] += 1
        entry["weight"] += fields.parse_weight(record.get(fields.WEIGHT_KG))
        carrier = clean(record.get(fields.CARRIER_CODE))
        if carrier:
            entry["carriers"][carrier] = None

    return [
        TradeLane(
            lane=label,
            origin=entry["lane"][0],
            destination=entry["lane"][1],
            shipment_count=entry["count"],
            carrier_count=len(entry["carriers"]),
            total_weight=round_half_up(entry["weight"]),
            carriers=list(entry["carriers"]),
        )
        for label, entry in _top(lanes)
    ]


def top_carriers(dataset: DatasetHandle, lane: Optional[str] = None) -> List[CarrierSummary]:
    """
    Busiest carriers, optionally restricted to one lane ('<origin> → <destination>').
    """
    snapshot = dataset.snapshot()

    carriers: Dict[str, dict] = {}
    for record in snapshot.store.all():
        carrier = clean(record.get(fields.CARRIER_CODE))
        if carrier is None:
            continue
        record_lane = fields.trade_lane(record)
        label = fields.lane_label(record_lane) if record_lane else None
        if lane and label != lane:
            continue

        entry = carriers.setdefault(carrier, {"count": 0, "weight": 0.0, "consignees": set(), "lanes": set()})
        entry["count"] += 1
        entry["weight"] += fields.parse_weight(record.get(fields.WEIGHT_KG))
        consignee = clean(record.get(fields.CONSIGNEE))
        if consignee:
            entry["consignees"].add(consignee)
        if label:
            entry["lanes"].add(label)

    return [
        CarrierSummary(
            carrier_code=code,
            shipment_count=entry["count"],
            total_weight=round_half_up(entry["weight"]),
            unique_consignees=len(entry["consignees"]),
            unique_lanes=len(entry["lanes"]),
        )
        for code, entry in _top(carriers)
    ]


def top_commodities(dataset: DatasetHandle) -> List[CommoditySummary]:
    snapshot = dataset.snapshot()

    commodities: Dict[str, dict] = {}
    for record in snapshot.store.all():
        commodity = clean(record.get(fields.COMMODITY))
        if commodity is None:
            continue
        entry = commodities.setdefault(commodity, {"count": 0, "weight": 0.0, "consignees": set(), "carriers": set()})
        entry["count"] += 1
        entry["weight"] += fields.parse_weight(record.get(fields.WEIGHT_KG))
        consignee = clean(record.get(fields.CONSIGNEE))
        if consignee:
            entry["consignees"].add(consignee)
        carrier = clean(record.get(fields.CARRIER_CODE))
        if carrier:
            entry["carriers"].add(carrier)

    return [
        CommoditySummary(
            commodity=name,
            shipment_count=entry["count"],
            total_weight=round_half_up(entry["weight"]),
            unique_consignees=len(entry["consignees"]),
            unique_carriers=len(entry["carriers"]),
        )
        for name, entry in _top(commodities)
    ]


def consignee_detail(dataset: DatasetHandle, name: str) -> ConsigneeDetail:
    """
    Full rollup of one consignee, looked up by exact name.

    Raises:
        NoDataLoaded: if nothing has been loaded.
        ConsigneeNotFound: if no consignee has exactly this name.
    """
    snapshot = dataset.snapshot()
    group = snapshot.index.get(name)
    if group is None:
        raise ConsigneeNotFound(name)

    recent = group.shipments[-settings.RECENT_SHIPMENTS_LIMIT:] if settings.RECENT_SHIPMENTS_LIMIT > 0 else []
    return ConsigneeDetail(
        name=group.name,
        total_shipments=group.shipment_count,
        total_weight=group.total_weight,
        carriers=list(group.carriers),
        commodities=list(group.commodities),
        ports=list(group.ports),
        first_activity=group.first_activity,
        last_activity=group.last_activity,
        recent_shipments=[dict(record) for record in reversed(recent)],
    )
