"""
Property valuation: a pluggable estimator plus a write-once snapshot of every
submission.

The estimate is computed before anything touches the store, so a failed write
never costs the caller their result; the snapshot is then handed to the worker
for another attempt.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Mapping, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import bounded
from app.core.errors import StoreUnavailableError, ValidationError
from app.core.ids import gen_id
from app.models.property_valuation import PropertyValuation
from app.models.reference_code import CONDOMINIUM, HOUSE_AND_LOT, VACANT_LOT, WAREHOUSE
from app.models.user import User
from app.schemas.property_details import parse_property_details
from app.schemas.valuation import GuestContact, ValuationIn, ValuationOut
from app.services.reference_data import ensure_location
from worker.celery_app import celery

log = logging.getLogger(__name__)

GUEST_FIELDS = ("first_name", "last_name", "email", "phone", "whatsapp_available")
DETAIL_COLUMNS = ("floor_area", "lot_size", "bedrooms", "bathrooms", "parking", "building_size", "ceiling_height")
DECIMAL_COLUMNS = ("floor_area", "lot_size", "building_size", "ceiling_height", "valuation_result")

PERSIST_WARNING = "Valuation computed but not saved yet; it will be stored shortly"


@dataclass(frozen=True)
class ValuationContext:
    region: str | None = None


class Estimator(Protocol):
    name: str

    def estimate(self, category: str, attrs: Mapping[str, Any], ctx: ValuationContext) -> Decimal: ...


def _d(value: Any) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


@dataclass
class WeightedLinearEstimator:
    """
    Rate per square metre on the governing size, plus fixed premiums per
    room and parking slot, scaled by a regional multiplier.
    """

    name: str = "weighted_linear"
    floor_rate: Mapping[str, Decimal] = field(default_factory=lambda: {
        CONDOMINIUM: Decimal("120000"),
        HOUSE_AND_LOT: Decimal("35000"),
        WAREHOUSE: Decimal("15000"),
    })
    lot_rate: Mapping[str, Decimal] = field(default_factory=lambda: {
        HOUSE_AND_LOT: Decimal("45000"),
        WAREHOUSE: Decimal("20000"),
        VACANT_LOT: Decimal("30000"),
    })
    bedroom_premium: Decimal = Decimal("150000")
    bathroom_premium: Decimal = Decimal("80000")
    parking_premium: Decimal = Decimal("250000")
    building_rate: Decimal = Decimal("8000")
    # per metre of clear height above the base
    ceiling_base_m: Decimal = Decimal("4")
    ceiling_step: Decimal = Decimal("0.03")
    region_multipliers: Mapping[str, Decimal] = field(default_factory=lambda: {
        "ncr": Decimal("1.35"),
        "metro manila": Decimal("1.35"),
    })

    def estimate(self, category: str, attrs: Mapping[str, Any], ctx: ValuationContext) -> Decimal:
        value = Decimal("0")
        value += _d(attrs.get("floor_area")) * self.floor_rate.get(category, Decimal("0"))
        value += _d(attrs.get("lot_size")) * self.lot_rate.get(category, Decimal("0"))
        value += _d(attrs.get("bedrooms")) * self.bedroom_premium
        value += _d(attrs.get("bathrooms")) * self.bathroom_premium
        value += _d(attrs.get("parking")) * self.parking_premium
        value += _d(attrs.get("building_size")) * self.building_rate

        ceiling = attrs.get("ceiling_height")
        if ceiling is not None and _d(ceiling) > self.ceiling_base_m:
            value *= 1 + (_d(ceiling) - self.ceiling_base_m) * self.ceiling_step

        if ctx.region:
            value *= self.region_multipliers.get(ctx.region.strip().lower(), Decimal("1"))

        return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


ESTIMATORS: dict[str, Callable[[], Estimator]] = {
    "weighted_linear": WeightedLinearEstimator,
}


def get_estimator(name: str | None = None) -> Estimator:
    key = name or settings.valuation_estimator
    factory = ESTIMATORS.get(key)
    if factory is None:
        raise ValidationError(f"Unknown estimator '{key}'", details=[{"known": sorted(ESTIMATORS)}])
    return factory()


def check_requester(user: User | None, guest: GuestContact | None) -> dict[str, Any]:
    """Exactly one of: signed-in user, complete guest contact. Returns guest_* columns."""
    if user is not None:
        if guest is not None:
            raise ValidationError("Send either guest contact or sign in, not both", details=[{"field": "guest"}])
        return {f"guest_{f}": None for f in GUEST_FIELDS}

    if guest is None:
        raise ValidationError("Guest contact is required", details=[{"field": "guest"}])
    missing = [f for f in GUEST_FIELDS if getattr(guest, f) is None or getattr(guest, f) == ""]
    if missing:
        raise ValidationError(
            "Guest contact is incomplete",
            details=[{"field": f"guest.{f}", "type": "missing"} for f in missing],
        )
    return {f"guest_{f}": getattr(guest, f) for f in GUEST_FIELDS}


def snapshot_to_json(snapshot: Mapping[str, Any]) -> dict[str, Any]:
    return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in snapshot.items()}


def snapshot_from_json(data: Mapping[str, Any]) -> dict[str, Any]:
    out = dict(data)
    for k in DECIMAL_COLUMNS:
        if out.get(k) is not None:
            out[k] = Decimal(str(out[k]))
    return out


async def persist_snapshot(db: AsyncSession, snapshot: Mapping[str, Any]) -> bool:
    """
    Insert the snapshot unless a row with its id exists. Returns True if inserted.

    Safe to repeat, so worker retries cannot duplicate a valuation.
    """
    snap = snapshot_from_json(snapshot)
    exists = (await db.execute(select(PropertyValuation.id).where(PropertyValuation.id == snap["id"]))).first()
    if exists is not None:
        return False
    db.add(PropertyValuation(**snap))
    await bounded(db.commit(), what="valuation write")
    return True


def enqueue_persist(snapshot: Mapping[str, Any]) -> bool:
    try:
        celery.send_task("worker.tasks.persist_valuation", args=[snapshot_to_json(snapshot)], queue="valuations")
        return True
    except Exception:
        log.exception("could not queue valuation %s for persistence", snapshot.get("id"))
        return False


async def submit_valuation(db: AsyncSession, *, payload: ValuationIn, user: User | None) -> ValuationOut:
    details = parse_property_details(payload.property_type, payload.details)
    guest_cols = check_requester(user, payload.guest)

    loc = payload.location
    if (loc.latitude is None) != (loc.longitude is None):
        raise ValidationError("Latitude and longitude must be given together", details=[{"field": "location"}])

    estimator = get_estimator()
    attrs = details.model_dump()
    estimate = estimator.estimate(payload.property_type, attrs, ValuationContext(region=loc.region))

    snapshot: dict[str, Any] = {
        "id": gen_id("val"),
        "user_id": user.id if user is not None else None,
        "property_type": payload.property_type,
        **{c: attrs.get(c) for c in DETAIL_COLUMNS},
        "address": loc.address,
        "city_id": loc.city_id,
        "sub_locality_id": loc.sub_locality_id,
        "region": loc.region,
        "latitude": loc.latitude,
        "longitude": loc.longitude,
        **guest_cols,
        "valuation_result": estimate,
        "estimator": estimator.name,
    }

    out = ValuationOut(
        estimate=estimate,
        property_type=payload.property_type,
        estimator=estimator.name,
        persisted=False,
    )

    try:
        snapshot["city_id"] = await bounded(
            ensure_location(db, loc.city_id, loc.sub_locality_id), what="location lookup"
        )
        await persist_snapshot(db, snapshot)
    except (SQLAlchemyError, StoreUnavailableError):
        await db.rollback()
        log.warning("valuation %s not persisted, queued for retry", snapshot["id"], exc_info=True)
        enqueue_persist(snapshot)
        out.warning = PERSIST_WARNING
        return out

    log.info("valuation %s stored: %s %s", snapshot["id"], payload.property_type, estimate)
    out.valuation_id = snapshot["id"]
    out.persisted = True
    return out


async def list_user_valuations(db: AsyncSession, *, user_id: str) -> list[PropertyValuation]:
    stmt = (
        select(PropertyValuation)
        .where(PropertyValuation.user_id == user_id)
        .order_by(PropertyValuation.created_at.desc(), PropertyValuation.id.desc())
    )
    return list((await db.execute(stmt)).scalars().all())
