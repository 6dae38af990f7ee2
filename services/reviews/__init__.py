"""Serviços de seleção, entrega e processamento de revisões."""

from .content import HttpWordContentProvider, WordContent
from .delivery import DeliveryResult, ReviewContent, ReviewDeliveryService
from .keyboards import build_rating_keyboard, parse_callback_data
from .processor import BatchResult, ProcessingStats, RatingCallback, ReviewProcessor
from .selector import DeliverySettings, DueReviewSelector

__all__ = [
    "BatchResult",
    "DeliveryResult",
    "DeliverySettings",
    "DueReviewSelector",
    "HttpWordContentProvider",
    "ProcessingStats",
    "RatingCallback",
    "ReviewContent",
    "ReviewDeliveryService",
    "ReviewProcessor",
    "WordContent",
    "build_rating_keyboard",
    "parse_callback_data",
]
