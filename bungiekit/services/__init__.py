"""Endpoint services and local helpers built on the request pipeline."""

from .destiny import DestinyService
from .reset import ResetService

__all__ = [
    "DestinyService",
    "ResetService",
]
