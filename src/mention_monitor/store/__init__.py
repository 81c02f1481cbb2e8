"""Run state storage."""

from .base import StateStore
from .json_store import JsonStateStore

__all__ = ["JsonStateStore", "StateStore"]
