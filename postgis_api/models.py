# ============================================================================
# MODULE CONTEXT - POSTGIS API MODELS
# ============================================================================
# STATUS: Standalone Models - PostGIS HTTP API response models
# PURPOSE: Response envelopes and payload types returned by the service layer
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: SuccessEnvelope, FeatureCollection, BinaryPayload, ServiceResult
# INTERFACES: Pydantic BaseModel
# DEPENDENCIES: pydantic, typing
# PATTERNS: Data Transfer Objects (DTOs)
# ============================================================================

"""
PostGIS API Response Models

The service layer returns one of three things per request:

- SuccessEnvelope: serialized as JSON {success, data, meta}
- BinaryPayload: raw protobuf bytes (Geobuf, MVT), no envelope
- None: nothing to return, answered with 204 No Content
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class SuccessEnvelope(BaseModel):
    """JSON success envelope."""
    success: Literal[True] = True
    data: Any = Field(description="Rows, a single row, or a FeatureCollection")
    meta: Dict[str, Any] = Field(default_factory=dict)


class FeatureCollection(BaseModel):
    """GeoJSON FeatureCollection assembled from per-row Feature objects."""
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: List[Dict[str, Any]] = Field(default_factory=list)


class BinaryPayload(BaseModel):
    """Undecorated binary body (protobuf-encoded)."""
    content: bytes
    content_type: str = "application/x-protobuf"


ServiceResult = Optional[Union[SuccessEnvelope, BinaryPayload]]
