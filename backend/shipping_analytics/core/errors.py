"""
Exceptions raised by the dataset loader and the query engine.

The HTTP layer maps these onto status codes; nothing in the core swallows them.
"""


class ShippingAnalyticsError(Exception):
    """Base class for all errors raised by the analytics core."""


class DecodeError(ShippingAnalyticsError):
    """The uploaded source could not be read as delimited text."""


class NoTabularEntry(DecodeError):
    """A zip archive holds no entry with the tabular file extension."""


class UnsupportedFormat(ShippingAnalyticsError):
    """The file extension is not one of the accepted manifest formats."""


class NoDataLoaded(ShippingAnalyticsError):
    """A query was issued before any dataset was loaded successfully."""

    def __init__(self, message: str = "No data loaded"):
        super().__init__(message)


class ConsigneeNotFound(ShippingAnalyticsError):
    def __init__(self, name: str):
        super().__init__(f"Consignee not found: {name}")
        self.name = name


class EmptyDataset(ShippingAnalyticsError):
    """Export was requested but the index holds no consignee groups."""
