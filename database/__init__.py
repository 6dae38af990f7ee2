"""Database package."""

from .models import Base, ReviewEvent, ReviewItem, UserDeliveryProfile  # noqa: F401
