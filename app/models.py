"""Pydantic models for API requests and responses."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class CellUpdateRequest(BaseModel):
    """Request model for a single-cell update."""
    identifier: Dict[str, Any] = Field(..., description="Natural-key column values of the target row")
    column: str = Field(..., min_length=1, description="Column to update")
    value: Any = Field(default=None, description="New scalar value (null clears the cell)")


class RowUpdateRequest(BaseModel):
    """Request model for a multi-column update."""
    identifier: Dict[str, Any] = Field(..., description="Natural-key column values of the target row")
    updates: Dict[str, Any] = Field(..., description="Column -> new value")


class AddRowRequest(BaseModel):
    """Request model for appending a row."""
    data: Dict[str, Any] = Field(..., description="Column -> value for the new row")
    client: Optional[str] = Field(default=None, description="Client to fill in when data has no Client")


class SetInactiveRequest(BaseModel):
    """Request model for soft-deleting or restoring a row."""
    identifier: Dict[str, Any] = Field(..., description="Natural-key column values of the target row")
    inactive: bool = Field(default=True, description="True archives the row, False restores it")


class AddColumnRequest(BaseModel):
    """Request model for adding a header column."""
    column: str = Field(..., min_length=1, description="Header name to add")


class MutationResponse(BaseModel):
    """Response model for every mutation."""
    success: bool = Field(..., description="Whether the mutation succeeded")
    table: str = Field(..., description="Table key")
    value: Any = Field(default=None, description="Stored value(s)")
    row_index: Optional[int] = Field(default=None, description="0-based position of the row in the table")
    changed: bool = Field(default=True, description="False when the row already had the requested state")


class TableResponse(BaseModel):
    """Response model for table reads."""
    data: List[Dict[str, Any]] = Field(..., description="Rows")
    count: int = Field(..., description="Number of rows returned")


class ClientOption(BaseModel):
    """One entry of the client picker."""
    value: str = Field(..., description="Client abbreviation")
    label: str = Field(..., description="Display label, e.g. 'Acme Corp (ACME)'")
    group: Optional[str] = Field(default=None, description="Company group")
    status: int = Field(default=0, description="0=Good, 1=Billing Issue, 2=Must Contact Office")


class ClientsResponse(BaseModel):
    """Response model for the client list."""
    data: List[ClientOption] = Field(..., description="Clients sorted by label")


class HostGroupsResponse(BaseModel):
    """Response model for the host-grouped view."""
    data: List[Dict[str, Any]] = Field(..., description="Host groups, real hosts first")
    count: int = Field(..., description="Number of host groups")


class PreferenceSetRequest(BaseModel):
    """Request model for POST /api/preferences."""
    key: str = Field(..., min_length=1, description="Preference key")
    value: str = Field(..., description="Preference value")


class PreferenceValueRequest(BaseModel):
    """Request model for PUT /api/preferences/{key}."""
    value: str = Field(..., description="Preference value")


class ConfigResponse(BaseModel):
    """Response model for public client configuration."""
    authDisabled: bool = Field(..., description="Whether authentication is disabled")
    appName: str = Field(..., description="Display name of the application")


class HealthResponse(BaseModel):
    """Response model for health endpoint."""
    status: str = Field(default="ok", description="Service status")
