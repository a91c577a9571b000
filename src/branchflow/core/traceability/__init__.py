from .manifest import (
    RunManifest,
    add_event,
    branches_expanded,
    create_manifest,
    load_manifest,
    node_completed,
    node_dispatched,
    node_failed,
    node_skipped,
    run_finished,
    save_manifest,
)

__all__ = [
    "RunManifest",
    "add_event",
    "branches_expanded",
    "create_manifest",
    "load_manifest",
    "node_completed",
    "node_dispatched",
    "node_failed",
    "node_skipped",
    "run_finished",
    "save_manifest",
]
