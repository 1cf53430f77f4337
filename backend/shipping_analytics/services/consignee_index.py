from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from shipping_analytics.core import fields
from shipping_analytics.core.fields import Record, clean


@dataclass
class ConsigneeGroup:
    """
    Every record of one consignee plus the rollups computed while indexing.

    carriers, commodities and ports are dicts used as insertion-ordered sets.
    """

    name: str
    shipments: List[Record] = field(default_factory=list)
    total_weight: float = 0.0
    carriers: Dict[str, None] = field(default_factory=dict)
    commodities: Dict[str, None] = field(default_factory=dict)
    ports: Dict[str, None] = field(default_factory=dict)
    first_activity: Optional[datetime] = None
    last_activity: Optional[datetime] = None

    @property
    def shipment_count(self) -> int:
        return len(self.shipments)

    def add(self, record: Record) -> None:
        self.shipments.append(record)
        self.total_weight += fields.parse_weight(record.get(fields.WEIGHT_KG))

        carrier = clean(record.get(fields.CARRIER_CODE))
        if carrier:
            self.carriers[carrier] = None
        commodity = clean(record.get(fields.COMMODITY))
        if commodity:
            self.commodities[commodity] = None
        port = clean(record.get(fields.PORT_OF_LADING))
        if port:
            self.ports[port] = None

        arrived = fields.parse_arrival_date(record.get(fields.ARRIVAL_DATE))
        if arrived is None:
            return
        # Strict comparisons: on a tie the bound already recorded stays.
        if self.first_activity is None or arrived < self.first_activity:
            self.first_activity = arrived
        if self.last_activity is None or arrived > self.last_activity:
            self.last_activity = arrived


ConsigneeIndex = Dict[str, ConsigneeGroup]


def build_index(records: Iterable[Record]) -> ConsigneeIndex:
    """
    Groups records by trimmed consignee name in a single pass.

    Records with a blank or missing consignee are left out. Names are matched
    exactly (case-sensitive) after trimming.
    """
    index: ConsigneeIndex = {}
    for record in records:
        name = clean(record.get(fields.CONSIGNEE))
        if name is None:
            continue
        group = index.get(name)
        if group is None:
            group = index[name] = ConsigneeGroup(name=name)
        group.add(record)
    return index
