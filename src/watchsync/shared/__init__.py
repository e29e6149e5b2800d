"""Shared helpers used by watchsync clients and coordinators."""

from .permissions import ControlAffordances, is_changer, is_controllable, project_affordances

__all__ = ["ControlAffordances", "is_changer", "is_controllable", "project_affordances"]
