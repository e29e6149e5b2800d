"""
watchsync: keep watch-party players in lock-step

A coordinator pushes one authoritative timeline; each client reconciles its
local player against it and relays genuine local actions upstream.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
