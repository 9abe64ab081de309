"""SupplierEligibilityEvaluator — decides which suppliers receive an alert.

A supplier without an active preference row receives every alert.  For
the others, the filters below form a conjunction and each one passes when
its preference is unset or the data it needs is missing:

  1. business_hours   current time inside the working window and weekdays
  2. urgency          alert urgency in the accepted set
  3. category         any alert drug category in the accepted set
  4. region           alert address mentions an accepted region
  5. distance         great-circle distance within max_distance_km
  6. order_value      estimated order value >= minimum_order_value
"""

import logging
import math
import re
from datetime import datetime, time, timezone
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from stockalert_ussd.constants import EARTH_RADIUS_KM, ESTIMATED_UNIT_PRICE, WEEKDAYS

logger = logging.getLogger(__name__)

_COORDINATES_RE = re.compile(r"(-?\d{1,2}(?:\.\d+)?)\s*,\s*(-?\d{1,3}(?:\.\d+)?)")


def _text(value: Any) -> str:
    """Plain lower-case string for enum-or-str values."""
    return str(getattr(value, "value", value) or "").strip().lower()


def parse_hhmm(value: str | None) -> time | None:
    """Parse ``"HH:MM"``; malformed values are treated as unset."""
    if not value:
        return None
    try:
        hours, minutes = value.strip().split(":", 1)
        return time(int(hours), int(minutes))
    except ValueError:
        logger.warning("Ignoring malformed business hour %r", value)
        return None


def parse_coordinates(location: str | None) -> tuple[float, float] | None:
    """Extract ``(lat, lng)`` from free text such as ``"Nakuru (-0.30,36.08)"``."""
    if not location:
        return None
    match = _COORDINATES_RE.search(location)
    if match is None:
        return None
    lat, lng = float(match.group(1)), float(match.group(2))
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return lat, lng


def haversine_km(a: tuple[float, float], b: tuple[float, float]) -> float:
    """Great-circle distance between two (lat, lng) points in kilometres."""
    lat1, lng1 = map(math.radians, a)
    lat2, lng2 = map(math.radians, b)
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def alert_coordinates(alert: Any) -> tuple[float, float] | None:
    location = getattr(alert, "location", None) or {}
    lat, lng = location.get("latitude"), location.get("longitude")
    if lat is None or lng is None:
        return None
    try:
        return float(lat), float(lng)
    except (TypeError, ValueError):
        return None


def alert_categories(alert: Any) -> set[str]:
    return {_text(d.get("category")) for d in (alert.drugs or []) if d.get("category")}


class SupplierEligibilityEvaluator:
    """Applies supplier preferences to an alert.

    Args:
        timezone_name: IANA zone in which business hours are expressed
        unit_price: per-unit price used to estimate an order's value
    """

    def __init__(
        self,
        timezone_name: str = "Africa/Nairobi",
        unit_price: float = ESTIMATED_UNIT_PRICE,
    ) -> None:
        self._tz = ZoneInfo(timezone_name)
        self._unit_price = unit_price

    def eligible_suppliers(
        self,
        alert: Any,
        suppliers: Iterable[Any],
        preferences: Iterable[Any],
        now: datetime | None = None,
    ) -> list[Any]:
        """Return the suppliers that should be notified about ``alert``.

        Order of ``suppliers`` is preserved.
        """
        now = now or datetime.now(timezone.utc)
        by_supplier = self._active_preferences(preferences)

        eligible = []
        for supplier in suppliers:
            preference = by_supplier.get(supplier.id)
            if preference is None:
                eligible.append(supplier)
                continue
            failed = self.explain(alert, supplier, preference, now)
            if failed is None:
                eligible.append(supplier)
            else:
                logger.debug(
                    "Supplier %s excluded from alert %s by %s filter",
                    supplier.id, getattr(alert, "id", None), failed,
                )
        logger.info(
            "Alert %s: %d eligible supplier(s)",
            getattr(alert, "id", None), len(eligible),
        )
        return eligible

    def explain(
        self,
        alert: Any,
        supplier: Any,
        preference: Any,
        now: datetime | None = None,
    ) -> str | None:
        """Name of the first filter ``preference`` fails for ``alert``, or None."""
        if preference is None or not preference.is_active:
            return None
        now = now or datetime.now(timezone.utc)

        checks = (
            ("business_hours", lambda: self._within_business_hours(preference, now)),
            ("urgency", lambda: self._urgency_accepted(alert, preference)),
            ("category", lambda: self._category_accepted(alert, preference)),
            ("region", lambda: self._region_served(alert, preference)),
            ("distance", lambda: self._within_distance(alert, supplier, preference)),
            ("order_value", lambda: self._meets_order_value(alert, preference)),
        )
        for name, check in checks:
            if not check():
                return name
        return None

    def estimated_order_value(self, alert: Any) -> float:
        total = 0
        for drug in alert.drugs or []:
            try:
                total += int(drug.get("requested_quantity") or 0)
            except (TypeError, ValueError):
                continue
        return total * self._unit_price

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def _active_preferences(self, preferences: Iterable[Any]) -> dict[Any, Any]:
        by_supplier: dict[Any, Any] = {}
        for preference in preferences:
            if preference.is_active:
                by_supplier[preference.supplier_id] = preference
        return by_supplier

    def _within_business_hours(self, preference: Any, now: datetime) -> bool:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        local = now.astimezone(self._tz)

        working_days = {_text(d) for d in (preference.working_days or [])}
        if working_days and WEEKDAYS[local.weekday()] not in working_days:
            return False

        start = parse_hhmm(preference.business_hours_start)
        end = parse_hhmm(preference.business_hours_end)
        if start is None or end is None:
            return True
        current = local.time().replace(second=0, microsecond=0)
        if start <= end:
            return start <= current <= end
        # Overnight window, e.g. 22:00-06:00
        return current >= start or current <= end

    def _urgency_accepted(self, alert: Any, preference: Any) -> bool:
        accepted = {_text(u) for u in (preference.urgency_levels or [])}
        if not accepted:
            return True
        return _text(alert.overall_urgency) in accepted

    def _category_accepted(self, alert: Any, preference: Any) -> bool:
        accepted = {_text(c) for c in (preference.drug_categories or [])}
        if not accepted:
            return True
        categories = alert_categories(alert)
        if not categories:
            return True
        return bool(categories & accepted)

    def _region_served(self, alert: Any, preference: Any) -> bool:
        regions = [_text(r) for r in (preference.geographic_regions or []) if r]
        address = _text((getattr(alert, "location", None) or {}).get("address"))
        if not regions or not address:
            return True
        return any(region in address for region in regions)

    def _within_distance(self, alert: Any, supplier: Any, preference: Any) -> bool:
        if preference.max_distance_km is None:
            return True
        origin = alert_coordinates(alert)
        destination = parse_coordinates(getattr(supplier, "location", None))
        if origin is None or destination is None:
            return True
        return haversine_km(origin, destination) <= preference.max_distance_km

    def _meets_order_value(self, alert: Any, preference: Any) -> bool:
        if preference.minimum_order_value is None:
            return True
        return self.estimated_order_value(alert) >= preference.minimum_order_value
