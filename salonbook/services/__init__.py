from salonbook.services.aggregation import AggregationEngine, compute_customer_totals
from salonbook.services.availability import AvailabilityEngine
from salonbook.services.catalog import Catalog
from salonbook.services.customers import CustomerDirectory
from salonbook.services.ledger import BookingLedger
from salonbook.services.notifications import (
    CompositeEventSink,
    EventOutbox,
    EventSink,
    LoggingEventSink,
)

__all__ = [
    "AggregationEngine",
    "compute_customer_totals",
    "AvailabilityEngine",
    "Catalog",
    "CustomerDirectory",
    "BookingLedger",
    "CompositeEventSink",
    "EventOutbox",
    "EventSink",
    "LoggingEventSink",
]
