"""Strict parsing boundary between store rows and CollectionRecord.

Every row read from the store passes through `parse_collection_row` before
it reaches the aggregator. Rows that cannot be coerced into the record shape
are rejected with MalformedRecordError instead of being guessed at.
"""

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.wm_collection.domain.models import CollectionRecord
from src.wm_collection.domain.pricing import estimate_value
from src.wm_common.datetime_utils import ensure_utc
from src.wm_common.enums import CollectionStatus
from src.wm_common.errors import MalformedRecordError

# Legacy status spellings still present in older rows.
_STATUS_ALIASES = {"submitted": CollectionStatus.PENDING.value}

DEFAULT_MATERIAL_TYPE = "PET"


class CollectionRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    customer_id: str
    collector_id: str | None = None
    weight_kg: float = Field(..., ge=0, allow_inf_nan=False)
    total_value: float | None = Field(None, ge=0, allow_inf_nan=False)
    status: CollectionStatus
    material_type: str | None = None
    created_at: datetime
    approved_at: datetime | None = None

    @field_validator("id", "customer_id", "collector_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: Any) -> Any:
        # asyncpg hands back uuid.UUID for uuid columns
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("id", "customer_id")
    @classmethod
    def non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("weight_kg", "total_value", mode="before")
    @classmethod
    def numeric_to_float(cls, v: Any) -> Any:
        if isinstance(v, Decimal):
            return float(v)
        return v

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            s = v.strip().lower()
            return _STATUS_ALIASES.get(s, s)
        return v

    def to_record(self) -> CollectionRecord:
        material = (self.material_type or "").strip() or DEFAULT_MATERIAL_TYPE
        value = (
            self.total_value
            if self.total_value is not None
            else estimate_value(material, self.weight_kg)
        )
        return CollectionRecord(
            id=self.id,
            customer_id=self.customer_id,
            collector_id=self.collector_id,
            weight_kg=self.weight_kg,
            monetary_value=value,
            status=self.status,
            material_type=material,
            created_at=ensure_utc(self.created_at),
            approved_at=ensure_utc(self.approved_at) if self.approved_at else None,
        )


def _summarize(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "row"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def parse_collection_row(row: Mapping[str, Any]) -> CollectionRecord:
    """Validate one store row and convert it to a CollectionRecord."""
    try:
        parsed = CollectionRow.model_validate(dict(row))
    except ValidationError as exc:
        raise MalformedRecordError(row.get("id"), _summarize(exc)) from exc
    return parsed.to_record()
