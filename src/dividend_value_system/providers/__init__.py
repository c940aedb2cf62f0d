"""Collaborator interfaces and in-memory implementations."""

from .base import (
    BoundedCaller,
    IndustryClassifier,
    MarketDataProvider,
    OrderGateway,
    PositionProvider,
    capture_positions,
    execute_order,
)
from .memory import (
    InMemoryMarketData,
    InMemoryPositionBook,
    PaperOrderGateway,
    StaticIndustryClassifier,
)

__all__ = [
    "BoundedCaller",
    "InMemoryMarketData",
    "InMemoryPositionBook",
    "IndustryClassifier",
    "MarketDataProvider",
    "OrderGateway",
    "PaperOrderGateway",
    "PositionProvider",
    "StaticIndustryClassifier",
    "capture_positions",
    "execute_order",
]
