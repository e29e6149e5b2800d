"""watchsync client components: engine, player backends, coordinator channel."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["ReconciliationEngine", "SyncRuntime", "launch_sync_client", "load_client_config"]


def _lazy_attr(name: str) -> Any:
    module_map = {
        "ReconciliationEngine": ("watchsync.client.control.reconciler", "ReconciliationEngine"),
        "SyncRuntime": ("watchsync.client.runtime.sync_runtime", "SyncRuntime"),
        "launch_sync_client": ("watchsync.client.launcher", "launch_sync_client"),
        "load_client_config": ("watchsync.client.config", "load_client_config"),
    }
    if name not in module_map:
        raise AttributeError(name)
    module_path, attr = module_map[name]
    module = import_module(module_path)
    return getattr(module, attr)


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegation
    return _lazy_attr(name)
