"""
Pydantic models for the Apple Pay routes and the gateway payload.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ──────────────────────────────────────────────────────────────────────
#  Merchant validation – POST /applepay/validate
# ──────────────────────────────────────────────────────────────────────


class ValidateMerchantSessionRequest(BaseModel):
    """Request body sent by the browser from ``onvalidatemerchant``."""

    model_config = ConfigDict(populate_by_name=True)

    validation_url: Optional[str] = Field(None, alias="validationUrl")


class MerchantSessionRequest(BaseModel):
    """JSON payload POSTed to the Apple Pay gateway."""

    model_config = ConfigDict(populate_by_name=True)

    merchant_identifier: str = Field(..., alias="merchantIdentifier")
    display_name: str = Field(..., alias="displayName")
    initiative: str = "web"
    initiative_context: str = Field(..., alias="initiativeContext")


class ErrorResponse(BaseModel):
    """Error body returned for 4xx/5xx responses."""

    error: str


# ──────────────────────────────────────────────────────────────────────
#  Home page – GET /
# ──────────────────────────────────────────────────────────────────────


class HomeModel(BaseModel):
    merchant_id: str = ""
    store_name: str = ""
