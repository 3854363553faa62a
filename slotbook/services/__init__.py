"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_committer import BookingCommitter
from .booking_service import BookingService
from .conflict_resolver import ConflictResolver
from .record_store import RecordStoreProtocol

__all__ = ["BookingCommitter", "BookingService", "ConflictResolver", "RecordStoreProtocol"]
