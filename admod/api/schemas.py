"""Pydantic schemas for request/response validation."""
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from admod.models.enums import AdStatus, AuditAction


# Ad schemas
class AdCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price: Decimal = Field(Decimal("0"), ge=0)
    metadata: Optional[dict] = None


class AdUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    metadata: Optional[dict] = None


class AdReject(BaseModel):
    reason: Optional[str] = None


class AdResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    title: str
    description: Optional[str]
    price: Decimal
    metadata: Optional[dict] = Field(None, validation_alias="metadata_json")
    views: int
    status: AdStatus
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    rejected_by: Optional[str]
    rejected_at: Optional[datetime]
    rejection_reason: Optional[str]
    created_at: datetime
    updated_at: datetime


class AdPage(BaseModel):
    items: List[AdResponse]
    total: int
    page: int
    limit: int


# Permission schemas
class PermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    resource: str
    action: str
    description: Optional[str]


class GrantRequest(BaseModel):
    admin_id: str
    permission_id: str


class GrantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    admin_id: str
    permission_id: str
    created_at: datetime


# Audit schemas
class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    action: AuditAction
    acting_admin_id: str
    entity_type: str
    entity_id: str
    old_values: Optional[dict]
    new_values: Optional[dict]
    description: Optional[str]
    ip_address: Optional[str]
    created_at: datetime


class AuditPageResponse(BaseModel):
    items: List[AuditEntryResponse]
    total: int
    page: int
    limit: int


# Error response
class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Envelope for every refused or failed request."""
    error: ErrorBody
