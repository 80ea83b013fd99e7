"""Schemas Pydantic da API."""

from .cascade_schemas import (
    StartCascadeRequest,
    FinalizeRequest,
    AppointmentEvent,
    LeadEvent,
    CancelEvent,
    CascadeEntryResponse,
    AssignmentResponse,
    LineageResponse,
    StartCascadeResponse,
    FinalizeResponse,
    SnapshotResponse,
    SweepResponse,
)

__all__ = [
    "StartCascadeRequest",
    "FinalizeRequest",
    "AppointmentEvent",
    "LeadEvent",
    "CancelEvent",
    "CascadeEntryResponse",
    "AssignmentResponse",
    "LineageResponse",
    "StartCascadeResponse",
    "FinalizeResponse",
    "SnapshotResponse",
    "SweepResponse",
]
