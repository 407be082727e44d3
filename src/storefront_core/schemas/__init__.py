"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .order import OrderData, OrderStatusUpdate, PaymentRequest
from .session import SchedulerControl, SessionCreate, SessionStatusUpdate, SessionUpdate

__all__ = [
    "OrderData", "OrderStatusUpdate", "PaymentRequest",
    "SchedulerControl", "SessionCreate", "SessionStatusUpdate", "SessionUpdate",
]
