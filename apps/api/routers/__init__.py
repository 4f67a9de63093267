"""Routers package."""

from . import (
    health,
    lead_finder,
    leads,
)
