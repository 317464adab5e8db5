from salonbook.store.base import (
    BookingUnitOfWork,
    Store,
    customer_directory_lock,
    customer_lock,
    staff_lock,
)
from salonbook.store.memory import InMemoryStore, InMemoryUnitOfWork, LockManager

__all__ = [
    "BookingUnitOfWork",
    "Store",
    "customer_directory_lock",
    "customer_lock",
    "staff_lock",
    "InMemoryStore",
    "InMemoryUnitOfWork",
    "LockManager",
]
