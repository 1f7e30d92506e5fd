"""Builders for service clients and the lifecycle controller."""

from .clients import get_controller, init_controller

__all__ = ["get_controller", "init_controller"]
