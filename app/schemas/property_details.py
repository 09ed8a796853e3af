from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import ValidationError
from app.models.reference_code import CONDOMINIUM, HOUSE_AND_LOT, VACANT_LOT, WAREHOUSE


class _Details(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CondominiumDetailsIn(_Details):
    floor_area: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    bedrooms: int = Field(ge=0, le=100)
    bathrooms: int = Field(ge=0, le=100)
    parking: int = Field(default=0, ge=0, le=100)


class HouseAndLotDetailsIn(_Details):
    lot_size: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    floor_area: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    bedrooms: int = Field(ge=0, le=100)
    bathrooms: int = Field(ge=0, le=100)
    parking: int = Field(default=0, ge=0, le=100)


class WarehouseDetailsIn(_Details):
    lot_size: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    floor_area: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    building_size: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    ceiling_height: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)


class VacantLotDetailsIn(_Details):
    lot_size: Decimal = Field(gt=0, max_digits=10, decimal_places=2)


DETAILS_SCHEMA_BY_CATEGORY: dict[str, type[_Details]] = {
    CONDOMINIUM: CondominiumDetailsIn,
    HOUSE_AND_LOT: HouseAndLotDetailsIn,
    WAREHOUSE: WarehouseDetailsIn,
    VACANT_LOT: VacantLotDetailsIn,
}


def parse_property_details(category: str, attrs: Mapping[str, Any] | BaseModel | None) -> _Details:
    """
    Validate category attributes against the category's shape.

    Missing required fields and fields that belong to another category both fail
    with ValidationError, carrying pydantic's structured error list as details.
    """
    schema = DETAILS_SCHEMA_BY_CATEGORY.get(category)
    if schema is None:
        raise ValidationError(f"Unknown property type '{category}'", details=[{"field": "property_type"}])

    if isinstance(attrs, BaseModel):
        attrs = attrs.model_dump(exclude_none=True)
    try:
        return schema.model_validate(dict(attrs or {}))
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {category} details",
            details=[{"field": ".".join(str(p) for p in err["loc"]), "type": err["type"], "message": err["msg"]} for err in e.errors()],
        ) from e
