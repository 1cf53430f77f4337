import csv
import io
import os
import sys

import pytest

# Add the backend directory to sys.path so we can import shipping_analytics
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from shipping_analytics.services.dataset import DatasetHandle

HEADER = [
    "Consignee",
    "Carrier Code",
    "Commodity",
    "Foreign Port of Lading",
    "US Port of Destination",
    "US Port of Unlading",
    "Weight (kg)",
    "Arrival Date",
]


def manifest_bytes(rows, header=HEADER) -> bytes:
    """Render rows (dicts keyed by header name) as CSV bytes."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow([row.get(name, "") for name in header])
    return buffer.getvalue().encode("utf-8")


def load_rows(rows, header=HEADER) -> DatasetHandle:
    dataset = DatasetHandle()
    dataset.load(io.BytesIO(manifest_bytes(rows, header)), "plain", source_name="test.csv")
    return dataset


ACME_BETA_ROWS = [
    {"Consignee": "Acme", "Carrier Code": "MSC", "Commodity": "FURNITURE",
     "Foreign Port of Lading": "Shanghai", "US Port of Destination": "Los Angeles",
     "Weight (kg)": "100", "Arrival Date": "2024-01-10"},
    {"Consignee": "Beta", "Carrier Code": "MAEU", "Commodity": "TOYS",
     "Foreign Port of Lading": "Ningbo", "US Port of Destination": "Long Beach",
     "Weight (kg)": "50", "Arrival Date": "2024-02-01"},
    {"Consignee": "Acme", "Carrier Code": "MSC", "Commodity": "LAMPS",
     "Foreign Port of Lading": "Shanghai", "US Port of Unlading": "Rotterdam",
     "Weight (kg)": "150", "Arrival Date": "2024-03-05"},
]


@pytest.fixture
def acme_beta() -> DatasetHandle:
    return load_rows(ACME_BETA_ROWS)


@pytest.fixture
def mixed_dataset() -> DatasetHandle:
    """A dozen shipments across five consignees with some messy values."""
    rows = [
        {"Consignee": "Global Imports LLC", "Carrier Code": "MSC", "Commodity": "STEEL PIPES",
         "Foreign Port of Lading": "Busan", "US Port of Destination": "Houston",
         "Weight (kg)": "12000", "Arrival Date": "2024-04-01"},
        {"Consignee": "Global Imports LLC", "Carrier Code": "COSU", "Commodity": "STEEL BARS",
         "Foreign Port of Lading": "Busan", "US Port of Destination": "Houston",
         "Weight (kg)": "8000.5", "Arrival Date": "2024-04-15"},
        {"Consignee": "Global Imports LLC", "Carrier Code": "MSC", "Commodity": "STEEL PIPES",
         "Foreign Port of Lading": "Kaohsiung", "US Port of Unlading": "Savannah",
         "Weight (kg)": "N/A", "Arrival Date": "not a date"},
        {"Consignee": "  Pacific Traders  ", "Carrier Code": "MAEU", "Commodity": "COFFEE",
         "Foreign Port of Lading": "Santos", "US Port of Destination": "New York",
         "Weight (kg)": "500", "Arrival Date": "03/20/2024"},
        {"Consignee": "Pacific Traders", "Carrier Code": "MAEU", "Commodity": "COFFEE BEANS",
         "Foreign Port of Lading": "Santos", "US Port of Destination": "New York",
         "Weight (kg)": "700", "Arrival Date": "2024-05-02"},
        {"Consignee": "pacific traders", "Carrier Code": "HLCU", "Commodity": "TEA",
         "Foreign Port of Lading": "Colombo", "US Port of Destination": "Newark",
         "Weight (kg)": "42", "Arrival Date": "2023-12-30"},
        {"Consignee": "Northwind Goods", "Carrier Code": "COSU", "Commodity": "TOYS",
         "Foreign Port of Lading": "Shanghai", "US Port of Destination": "Long Beach",
         "Weight (kg)": "300", "Arrival Date": "2024-01-08"},
        {"Consignee": "Northwind Goods", "Carrier Code": "MSC", "Commodity": "GAMES",
         "Foreign Port of Lading": "Shanghai", "US Port of Destination": "Long Beach",
         "Weight (kg)": "250", "Arrival Date": "2024-02-08"},
        {"Consignee": "Acme, Inc.", "Carrier Code": "MSC", "Commodity": "WIDGETS \"DELUXE\"",
         "Foreign Port of Lading": "Yantian", "US Port of Destination": "Oakland",
         "Weight (kg)": "75", "Arrival Date": "2024-06-01"},
        {"Consignee": "", "Carrier Code": "MSC", "Commodity": "UNKNOWN",
         "Foreign Port of Lading": "Busan", "US Port of Destination": "Houston",
         "Weight (kg)": "10"},
        {"Consignee": "null", "Carrier Code": "ONEY", "Commodity": "PAPER",
         "Foreign Port of Lading": "Tokyo", "US Port of Destination": "Seattle",
         "Weight (kg)": "20"},
        {"Consignee": "   ", "Carrier Code": "ONEY", "Commodity": "PAPER",
         "Foreign Port of Lading": "Tokyo",
         "Weight (kg)": "30"},
    ]
    return load_rows(rows)
