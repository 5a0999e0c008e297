"""Planner CRM models - re-exports all models and Base.metadata."""

from .base import Base, UUIDMixin, TimestampMixin
from .contact import Contact
from .funnel import Funnel, FunnelStage
from .lost_reason import LostReason
from .opportunity import Opportunity
from .history import OpportunityHistory
from .notification import Notification

__all__ = [
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "Contact",
    "Funnel",
    "FunnelStage",
    "LostReason",
    "Opportunity",
    "OpportunityHistory",
    "Notification",
]
