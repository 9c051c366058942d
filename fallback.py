"""
Static content served while MongoDB is unreachable.

Loaders return a tagged DataSource so handlers know whether they are
looking at store-backed data or the fallback snapshot.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Generic, List, Optional, Tuple, TypeVar, Union

from pymongo import ASCENDING, DESCENDING

from config import ADMIN_EMAIL, ADMIN_PASSWORD
from database import AvailabilityMonitor, Store, StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

FALLBACK_ADMIN_ID = "fallback-admin"

BY_ORDER = [("order", ASCENDING)]
NEWEST_FIRST = [("created_at", DESCENDING)]

_SETTINGS = {
    "siteName": "ESIGN IMAGE STUDIO",
    "siteTitle": "ESIGN IMAGE STUDIO - Capturing Life's Moments",
    "logoPath": "/images/WhatsApp Image 2025-10-28 at 15.42.31.jpeg",
    "email": "hello@omikozphotography.com",
    "phone": "+1 (555) 123-4567",
    "aboutText": "With years of experience in capturing precious moments...",
}

_SERVICES = [
    {"_id": "1", "title": "Photography", "description": "Professional portrait, landscape, and commercial photography", "icon": "📷", "isActive": True},
    {"_id": "2", "title": "Videography", "description": "High-quality video production for all occasions", "icon": "🎥", "isActive": True},
    {"_id": "3", "title": "Event Coverage", "description": "Complete coverage for weddings, parties, and corporate events", "icon": "🎉", "isActive": True},
    {"_id": "4", "title": "Photo Editing", "description": "Professional retouching and enhancement services", "icon": "✨", "isActive": True},
]


def settings() -> dict:
    return copy.deepcopy(_SETTINGS)


def services() -> List[dict]:
    return copy.deepcopy(_SERVICES)


def carousel_slides() -> List[dict]:
    return []


def admin_credentials() -> Tuple[str, str]:
    return ADMIN_EMAIL, ADMIN_PASSWORD


# ------------------------
# Tagged data sources
# ------------------------

@dataclass(frozen=True)
class FromStore(Generic[T]):
    value: T


@dataclass(frozen=True)
class FromFallback(Generic[T]):
    value: T


DataSource = Union[FromStore[T], FromFallback[T]]


@dataclass
class HomeContent:
    settings: dict
    services: List[dict]
    carousel_slides: List[dict]


@dataclass
class DashboardContent:
    settings: dict
    services: List[dict]
    carousel_slides: List[dict]
    bookings: List[dict] = field(default_factory=list)


def is_available(store: Optional[Store], monitor: AvailabilityMonitor) -> bool:
    return store is not None and monitor.is_connected()


def fallback_home() -> HomeContent:
    return HomeContent(settings(), services(), carousel_slides())


def fallback_dashboard() -> DashboardContent:
    return DashboardContent(settings(), services(), carousel_slides(), [])


def load_home(store: Optional[Store], monitor: AvailabilityMonitor) -> DataSource[HomeContent]:
    if not is_available(store, monitor):
        return FromFallback(fallback_home())
    try:
        return FromStore(HomeContent(
            settings=store.settings.get() or settings(),
            services=store.services.find({"isActive": True}, sort=BY_ORDER),
            carousel_slides=store.carousel.find({"isActive": True}, sort=BY_ORDER),
        ))
    except StoreError as e:
        logger.error("Error loading homepage: %s", e)
        return FromFallback(fallback_home())


def load_dashboard(store: Optional[Store], monitor: AvailabilityMonitor) -> DataSource[DashboardContent]:
    if not is_available(store, monitor):
        return FromFallback(fallback_dashboard())
    try:
        bookings = store.bookings.find(sort=NEWEST_FIRST)
        return FromStore(DashboardContent(
            settings=store.settings.get() or settings(),
            services=store.services.find(sort=BY_ORDER),
            carousel_slides=store.carousel.find(sort=BY_ORDER),
            bookings=store.populate_bookings(bookings),
        ))
    except StoreError as e:
        logger.error("Dashboard error: %s", e)
        return FromFallback(fallback_dashboard())
