"""Pydantic models for products and the change proposals made against them."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=256)
    quantity_box: int = Field(0, ge=0)
    quantity_kg: float = Field(0.0, ge=0)
    box_to_kg_ratio: float = Field(0.0, ge=0)
    cost_per_box: float = Field(0.0, ge=0)
    cost_per_kg: float = Field(0.0, ge=0)
    price_per_box: float = Field(0.0, ge=0)
    price_per_kg: float = Field(0.0, ge=0)
    low_stock_threshold: int = Field(0, ge=0)

    model_config = {"allow_inf_nan": False}


class ProductOut(BaseModel):
    product_id: str
    business_id: str
    name: str
    quantity_box: int
    quantity_kg: float
    box_to_kg_ratio: float
    cost_per_box: float
    cost_per_kg: float
    price_per_box: float
    price_per_kg: float
    low_stock_threshold: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StockChangeRequest(BaseModel):
    box_change: int = 0
    kg_change: float = 0.0
    note: str | None = None

    model_config = {"allow_inf_nan": False}


class ProductEditRequest(BaseModel):
    field: str
    new_value: Any
    note: str | None = None


class ProductDeleteRequest(BaseModel):
    note: str | None = None
