from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ShipmentRecord = Dict[str, Optional[str]]


class CamelModel(BaseModel):
    """Serializes to camelCase JSON; Python code keeps snake_case names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConsigneeSortField(str, Enum):
    SHIPMENT_COUNT = "shipmentCount"
    NAME = "name"
    TOTAL_WEIGHT = "totalWeight"
    LAST_ACTIVITY = "lastActivity"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ConsigneeFilters(CamelModel):
    """
    Conjunctive filters for the consignee listing. Empty values disable a filter.
    """
    name: Optional[str] = Field(None, description="Case-insensitive substring of the consignee name.")
    min_shipments: int = Field(0, ge=0, description="Inclusive minimum shipment count; 0 disables.")
    commodity: Optional[str] = Field(None, description="Substring of any commodity shipped.")
    port: Optional[str] = Field(None, description="Substring of any origin port.")
    carrier: Optional[str] = Field(None, description="Substring of any carrier code.")


class ConsigneeSummary(CamelModel):
    name: str
    shipment_count: int
    total_weight: int = Field(..., description="Total weight in kg, rounded to the nearest integer.")
    unique_carriers: int
    unique_commodities: int
    unique_ports: int
    carriers: List[str]
    commodities: List[str]
    ports: List[str]
    last_activity: Optional[datetime] = None


class ConsigneePage(CamelModel):
    consignees: List[ConsigneeSummary]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    has_more: bool


class ConsigneeSuggestion(CamelModel):
    name: str
    shipment_count: int


class LeaderboardEntry(CamelModel):
    value: str
    count: int


class ConsigneeStats(CamelModel):
    total_consignees: int
    average_shipments_per_consignee: int
    multi_shipment_consignees: int
    top_commodities: List[LeaderboardEntry]
    top_ports: List[LeaderboardEntry]
    top_carriers: List[LeaderboardEntry]


class ConsigneeDetail(CamelModel):
    name: str
    total_shipments: int
    total_weight: float
    carriers: List[str]
    commodities: List[str]
    ports: List[str]
    first_activity: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    recent_shipments: List[ShipmentRecord] = Field(
        default_factory=list, description="Most recently appended shipments, newest first."
    )


class RecordSearchResult(CamelModel):
    results: List[ShipmentRecord]
    total_count: int


class TopConsignee(CamelModel):
    name: str
    shipment_count: int
    total_weight: int


class TradeLane(CamelModel):
    lane: str = Field(..., description="'<origin> → <destination>'")
    origin: str
    destination: str
    shipment_count: int
    carrier_count: int
    total_weight: int
    carriers: List[str]


class CarrierSummary(CamelModel):
    carrier_code: str
    shipment_count: int
    total_weight: int
    unique_consignees: int
    unique_lanes: int


class CommoditySummary(CamelModel):
    commodity: str
    shipment_count: int
    total_weight: int
    unique_consignees: int
    unique_carriers: int


class UploadResponse(CamelModel):
    success: bool
    record_count: int


class HealthStatus(CamelModel):
    status: str
    data_loaded: bool
    record_count: int
