"""Deferred mutations carried by audit entries.

A proposal stores the mutation *name* plus a JSON payload, never a callable,
so a pending entry survives restarts between proposal and resolution.  The
registry below turns (name, payload) back into validated arguments and the
function that applies them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from pydantic import BaseModel, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from fishstock.auth.rbac import Operation
from fishstock.errors import ValidationError
from fishstock.services import product_service


# ── Payload schemas ─────────────────────────────────────────────


class StockAdditionPayload(BaseModel):
    box_change: int = Field(0, ge=0)
    kg_change: float = Field(0.0, ge=0)
    note: str | None = Field(None, max_length=500)

    model_config = {"allow_inf_nan": False}

    @model_validator(mode="after")
    def _non_zero(self) -> "StockAdditionPayload":
        if self.box_change == 0 and self.kg_change == 0:
            raise ValueError("a stock addition must add boxes or kilograms")
        return self


class StockCorrectionPayload(BaseModel):
    box_change: int = 0
    kg_change: float = 0.0
    note: str | None = Field(None, max_length=500)

    model_config = {"allow_inf_nan": False}

    @model_validator(mode="after")
    def _non_zero(self) -> "StockCorrectionPayload":
        if self.box_change == 0 and self.kg_change == 0:
            raise ValueError("a stock correction must change boxes or kilograms")
        return self


class ProductEditPayload(BaseModel):
    field: product_service.EditableField
    new_value: Union[str, float, int]
    note: str | None = Field(None, max_length=500)

    model_config = {"allow_inf_nan": False}

    @model_validator(mode="after")
    def _coerce(self) -> "ProductEditPayload":
        caster = product_service.NUMERIC_FIELDS.get(self.field)
        if caster is None:
            value = str(self.new_value).strip()
            if not value:
                raise ValueError(f"'{self.field}' must not be empty")
        else:
            try:
                number = float(self.new_value)
            except (TypeError, ValueError, OverflowError) as exc:
                raise ValueError(f"'{self.field}' must be numeric") from exc
            if not math.isfinite(number):
                raise ValueError(f"'{self.field}' must be a finite number")
            if caster is int and not number.is_integer():
                raise ValueError(f"'{self.field}' must be a whole number")
            value = caster(number)
            if value < 0:
                raise ValueError(f"'{self.field}' must not be negative")
        self.new_value = value
        return self


class ProductDeletePayload(BaseModel):
    note: str | None = Field(None, max_length=500)


# ── Appliers ────────────────────────────────────────────────────


async def _apply_stock(db: AsyncSession, target_id: str, payload: Any) -> dict[str, Any]:
    product = await product_service.apply_stock_delta(db, target_id, payload.box_change, payload.kg_change)
    return {"quantity_box": product.quantity_box, "quantity_kg": product.quantity_kg}


async def _apply_edit(db: AsyncSession, target_id: str, payload: Any) -> dict[str, Any]:
    await product_service.apply_field_edit(db, target_id, payload.field, payload.new_value)
    return {payload.field: payload.new_value}


async def _apply_delete(db: AsyncSession, target_id: str, payload: Any) -> dict[str, Any]:
    await product_service.delete_product(db, target_id)
    return {"deleted": True}


# ── Registry ────────────────────────────────────────────────────


@dataclass(frozen=True)
class Mutation:
    name: str
    target_type: str
    # Permission the requester needs in order to propose this mutation.
    propose_operation: Operation
    payload_model: type[BaseModel]
    key: Callable[[Any], str]
    apply: Callable[[AsyncSession, str, Any], Awaitable[dict[str, Any]]]
    # Deleting the target invalidates every other pending proposal for it.
    removes_target: bool = False

    def parse(self, payload: dict[str, Any]) -> BaseModel:
        try:
            return self.payload_model.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError.from_errors(exc.errors(), f"Invalid {self.name} payload: ") from exc


MUTATIONS: dict[str, Mutation] = {
    m.name: m
    for m in (
        Mutation(
            name="stock_addition",
            target_type="product",
            propose_operation=Operation.STOCK_PROPOSE,
            payload_model=StockAdditionPayload,
            key=lambda p: "stock",
            apply=_apply_stock,
        ),
        Mutation(
            name="stock_correction",
            target_type="product",
            propose_operation=Operation.STOCK_PROPOSE,
            payload_model=StockCorrectionPayload,
            key=lambda p: "stock",
            apply=_apply_stock,
        ),
        Mutation(
            name="product_edit",
            target_type="product",
            propose_operation=Operation.PRODUCT_PROPOSE_CHANGE,
            payload_model=ProductEditPayload,
            key=lambda p: f"field:{p.field}",
            apply=_apply_edit,
        ),
        Mutation(
            name="product_delete",
            target_type="product",
            propose_operation=Operation.PRODUCT_PROPOSE_CHANGE,
            payload_model=ProductDeletePayload,
            key=lambda p: "delete",
            apply=_apply_delete,
            removes_target=True,
        ),
    )
}


def get_mutation(name: str) -> Mutation:
    try:
        return MUTATIONS[name]
    except KeyError:
        raise ValidationError(f"Unknown mutation '{name}'") from None
