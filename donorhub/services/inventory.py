# donorhub/services/inventory.py
"""Blood-bank stock: compatibility matching, reservations and fulfilment.

For every inventory row ``units_available >= 0`` and ``units_reserved >= 0``.
Reserving moves units from available to reserved and releasing moves them
back, so the total only drops when reserved units are consumed.
"""
import logging
import math
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.orm import Session

from donorhub.config import settings
from donorhub.models.all_models import BloodBank, BloodInventory, BloodRequest, BloodType, RequestStatus
from donorhub.services.errors import (
    InsufficientInventoryError, InvalidInputError, InvalidStateError, NotFoundError,
)
from donorhub.utils.clock import Clock
from donorhub.utils.dates import parse_date

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371

# requested type -> donor types that can be transfused
COMPATIBILITY: Dict[BloodType, Tuple[BloodType, ...]] = {
    BloodType.A_POS: (BloodType.A_POS, BloodType.A_NEG, BloodType.O_POS, BloodType.O_NEG),
    BloodType.A_NEG: (BloodType.A_NEG, BloodType.O_NEG),
    BloodType.B_POS: (BloodType.B_POS, BloodType.B_NEG, BloodType.O_POS, BloodType.O_NEG),
    BloodType.B_NEG: (BloodType.B_NEG, BloodType.O_NEG),
    BloodType.AB_POS: tuple(BloodType),
    BloodType.AB_NEG: (BloodType.A_NEG, BloodType.B_NEG, BloodType.AB_NEG, BloodType.O_NEG),
    BloodType.O_POS: (BloodType.O_POS, BloodType.O_NEG),
    BloodType.O_NEG: (BloodType.O_NEG,),
}


class InventoryMatch(BaseModel):
    blood_bank_id: str
    blood_bank_name: str
    blood_type: BloodType
    units_available: int
    exact_match: bool
    distance_km: Optional[float] = None


class InventoryAlert(BaseModel):
    blood_bank_id: str
    blood_type: BloodType
    alert_type: str  # low_stock | critical_stock | expiring_soon
    current_units: int
    minimum_threshold: int
    message: str


def to_blood_type(value) -> BloodType:
    try:
        return BloodType(value.value if isinstance(value, BloodType) else str(value).strip().upper())
    except ValueError:
        raise InvalidInputError(
            f"Unsupported blood type: {value!r}",
            {"field": "blood_type", "value": str(value), "allowed": [bt.value for bt in BloodType]},
        )


def compatible_blood_types(blood_type) -> Tuple[BloodType, ...]:
    return COMPATIBILITY[to_blood_type(blood_type)]


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _positive_units(units, field: str = "units") -> int:
    if isinstance(units, bool) or not isinstance(units, int) or units <= 0:
        raise InvalidInputError(
            f"{field} must be a positive whole number",
            {"field": field, "value": units},
        )
    return units


class InventoryService:
    def __init__(self, db: Session, clock: Clock = None):
        self.db = db
        self.clock = clock or Clock()

    def _row(self, blood_bank_id, blood_type: BloodType, lock: bool = False) -> Optional[BloodInventory]:
        query = self.db.query(BloodInventory).filter(
            BloodInventory.blood_bank_id == blood_bank_id,
            BloodInventory.blood_type == blood_type,
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    # --------------------------------------------------------------- matching

    def find_matches(self, blood_type, units_needed: int,
                     coordinates: Optional[Tuple[float, float]] = None) -> List[InventoryMatch]:
        """Rank active banks holding at least ``units_needed`` of a compatible type.

        Exact type first, then most units; with ``coordinates`` (lat, lng)
        the list is finally re-sorted by distance, banks without a location last.
        """
        requested = to_blood_type(blood_type)
        _positive_units(units_needed, "units_needed")

        rows = self.db.query(BloodInventory, BloodBank).join(
            BloodBank, BloodInventory.blood_bank_id == BloodBank.id
        ).filter(
            BloodInventory.blood_type.in_(COMPATIBILITY[requested]),
            BloodInventory.units_available >= units_needed,
            BloodBank.is_active == True,
        ).all()

        matches = []
        for inventory, bank in rows:
            distance = None
            if coordinates is not None and bank.latitude is not None and bank.longitude is not None:
                distance = round(haversine_km(coordinates[0], coordinates[1], bank.latitude, bank.longitude), 2)
            matches.append(InventoryMatch(
                blood_bank_id=str(bank.id),
                blood_bank_name=bank.name,
                blood_type=inventory.blood_type,
                units_available=inventory.units_available,
                exact_match=inventory.blood_type == requested,
                distance_km=distance,
            ))

        matches.sort(key=lambda m: (not m.exact_match, -m.units_available))
        if coordinates is not None:
            matches.sort(key=lambda m: (m.distance_km is None, m.distance_km or 0.0))
        return matches

    # ----------------------------------------------------------- reservations

    def reserve(self, blood_bank_id, blood_type, units: int) -> bool:
        """Move ``units`` from available to reserved, all or nothing."""
        blood_type = to_blood_type(blood_type)
        _positive_units(units)

        updated = self.db.query(BloodInventory).filter(
            BloodInventory.blood_bank_id == blood_bank_id,
            BloodInventory.blood_type == blood_type,
            BloodInventory.units_available >= units,
        ).update(
            {
                BloodInventory.units_available: BloodInventory.units_available - units,
                BloodInventory.units_reserved: BloodInventory.units_reserved + units,
                BloodInventory.last_updated: self.clock.now(),
            },
            synchronize_session=False,
        )
        if not updated:
            logger.warning("Reservation of %s %s units at bank %s refused", units, blood_type.value, blood_bank_id)
            return False

        self.db.commit()
        logger.info("Reserved %s %s units at bank %s", units, blood_type.value, blood_bank_id)
        return True

    def release(self, blood_bank_id, blood_type, units: int) -> int:
        """Return up to ``units`` reserved units to available; returns the amount moved."""
        blood_type = to_blood_type(blood_type)
        _positive_units(units)

        inventory = self._row(blood_bank_id, blood_type, lock=True)
        if inventory is None:
            raise NotFoundError(
                "Inventory not found",
                {"blood_bank_id": str(blood_bank_id), "blood_type": blood_type.value},
            )
        released = min(units, inventory.units_reserved)
        inventory.units_reserved -= released
        inventory.units_available += released
        inventory.last_updated = self.clock.now()
        self.db.commit()

        logger.info("Released %s %s units at bank %s", released, blood_type.value, blood_bank_id)
        return released

    def consume(self, blood_bank_id, blood_type, units: int) -> BloodInventory:
        """Issue reserved units; they leave the inventory for good."""
        blood_type = to_blood_type(blood_type)
        _positive_units(units)

        inventory = self._row(blood_bank_id, blood_type, lock=True)
        reserved = inventory.units_reserved if inventory is not None else 0
        if reserved < units:
            self.db.rollback()
            raise InsufficientInventoryError(
                "Not enough reserved units to issue",
                {"blood_type": blood_type.value, "reserved": reserved, "required": units},
            )
        inventory.units_reserved -= units
        inventory.last_updated = self.clock.now()
        self.db.commit()
        self.db.refresh(inventory)

        logger.info("Issued %s %s units at bank %s", units, blood_type.value, blood_bank_id)
        return inventory

    # ------------------------------------------------------------ fulfilment

    def fulfill(self, request_id, blood_bank_id, units_provided: int, notes: str = None) -> BloodRequest:
        """Fulfil a pending request from one bank in a single transaction.

        Units of the request's exact type move to reserved and the request
        becomes fulfilled. Any failure rolls the whole transaction back.
        """
        try:
            request = self.db.query(BloodRequest).filter(BloodRequest.id == request_id).with_for_update().first()
            if request is None:
                raise NotFoundError("Blood request not found", {"request_id": str(request_id)})
            if request.status != RequestStatus.PENDING:
                raise InvalidStateError(
                    "Request not found or already processed",
                    {"current": request.status.value, "required": RequestStatus.PENDING.value},
                )
            _positive_units(units_provided, "units_provided")

            bank = self.db.query(BloodBank).filter(BloodBank.id == blood_bank_id).first()
            if bank is None:
                raise NotFoundError("Blood bank not found", {"blood_bank_id": str(blood_bank_id)})

            inventory = self._row(blood_bank_id, request.blood_type, lock=True)
            available = inventory.units_available if inventory is not None else 0
            if available < units_provided:
                raise InsufficientInventoryError(
                    "Insufficient inventory available",
                    {"blood_type": request.blood_type.value, "available": available, "required": units_provided},
                )

            now = self.clock.now()
            inventory.units_available -= units_provided
            inventory.units_reserved += units_provided
            inventory.last_updated = now

            # conditional on the row still being pending
            changed = self.db.query(BloodRequest).filter(
                BloodRequest.id == request.id,
                BloodRequest.status == RequestStatus.PENDING,
            ).update(
                {
                    BloodRequest.status: RequestStatus.FULFILLED,
                    BloodRequest.fulfilled_by: bank.id,
                    BloodRequest.fulfilled_at: now,
                    BloodRequest.notes: notes if notes is not None else request.notes,
                },
                synchronize_session=False,
            )
            if not changed:
                raise InvalidStateError(
                    "Request not found or already processed",
                    {"required": RequestStatus.PENDING.value},
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(request)
        logger.info("Request %s fulfilled by bank %s with %s units", request.id, bank.id, units_provided)
        return request

    # ------------------------------------------------------- stock management

    def set_stock(self, blood_bank_id, blood_type, units_available: int = None, minimum_threshold: int = None,
                  expiration_date=None) -> BloodInventory:
        """Create or overwrite a bank's row for ``blood_type``."""
        blood_type = to_blood_type(blood_type)
        for field, value in (("units_available", units_available), ("minimum_threshold", minimum_threshold)):
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
                raise InvalidInputError(f"{field} must be a non-negative whole number", {"field": field, "value": value})

        inventory = self._row(blood_bank_id, blood_type, lock=True)
        if inventory is None:
            inventory = BloodInventory(
                blood_bank_id=blood_bank_id,
                blood_type=blood_type,
                units_available=0,
                units_reserved=0,
                minimum_threshold=settings.DEFAULT_MINIMUM_THRESHOLD,
            )
            self.db.add(inventory)
        if units_available is not None:
            inventory.units_available = units_available
        if minimum_threshold is not None:
            inventory.minimum_threshold = minimum_threshold
        if expiration_date is not None:
            inventory.expiration_date = parse_date(expiration_date, "expiration_date")
        inventory.last_updated = self.clock.now()
        self.db.commit()
        self.db.refresh(inventory)
        return inventory

    def add_units(self, blood_bank_id, blood_type, units: int, commit: bool = True) -> BloodInventory:
        """Stock intake, e.g. after a donation."""
        blood_type = to_blood_type(blood_type)
        _positive_units(units)

        inventory = self._row(blood_bank_id, blood_type, lock=True)
        if inventory is None:
            inventory = BloodInventory(
                blood_bank_id=blood_bank_id,
                blood_type=blood_type,
                units_available=0,
                units_reserved=0,
                minimum_threshold=settings.DEFAULT_MINIMUM_THRESHOLD,
            )
            self.db.add(inventory)
        inventory.units_available += units
        inventory.last_updated = self.clock.now()
        if commit:
            self.db.commit()
            self.db.refresh(inventory)
        return inventory

    def list_for_bank(self, blood_bank_id) -> List[BloodInventory]:
        return self.db.query(BloodInventory).filter(
            BloodInventory.blood_bank_id == blood_bank_id
        ).order_by(BloodInventory.blood_type).all()

    def alerts(self, blood_bank_id) -> List[InventoryAlert]:
        today = self.clock.now().date()
        horizon = today + timedelta(days=settings.EXPIRY_ALERT_DAYS)
        alerts = []

        for item in self.list_for_bank(blood_bank_id):
            base = dict(
                blood_bank_id=str(blood_bank_id),
                blood_type=item.blood_type,
                current_units=item.units_available,
                minimum_threshold=item.minimum_threshold,
            )
            if item.units_available == 0:
                alerts.append(InventoryAlert(
                    alert_type="critical_stock",
                    message=f"{item.blood_type.value} blood type is out of stock",
                    **base,
                ))
            elif item.units_available <= item.minimum_threshold:
                alerts.append(InventoryAlert(
                    alert_type="low_stock",
                    message=f"{item.blood_type.value} blood type is running low ({item.units_available} units remaining)",
                    **base,
                ))

            if item.expiration_date and today < item.expiration_date <= horizon:
                alerts.append(InventoryAlert(
                    alert_type="expiring_soon",
                    message=f"{item.blood_type.value} blood units expire on {item.expiration_date.isoformat()}",
                    **base,
                ))

        return alerts

    def summary(self, blood_bank_id) -> dict:
        summary = {
            "total_units": 0,
            "total_reserved": 0,
            "total_available": 0,
            "low_stock_count": 0,
            "critical_stock_count": 0,
            "by_blood_type": {},
        }

        for item in self.list_for_bank(blood_bank_id):
            summary["total_units"] += item.units_available + item.units_reserved
            summary["total_reserved"] += item.units_reserved
            summary["total_available"] += item.units_available

            stock_status = "normal"
            if item.units_available == 0:
                stock_status = "critical"
                summary["critical_stock_count"] += 1
            elif item.units_available <= item.minimum_threshold:
                stock_status = "low"
                summary["low_stock_count"] += 1

            summary["by_blood_type"][item.blood_type.value] = {
                "available": item.units_available,
                "reserved": item.units_reserved,
                "threshold": item.minimum_threshold,
                "status": stock_status,
            }

        return summary
