"""Routers package."""

from . import (
    health,
    auth,
    users,
    classes,
    billing,
    admin,
)
