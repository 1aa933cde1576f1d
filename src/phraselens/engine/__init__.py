"""Traversal, change tracking and coordination."""

from phraselens.engine.coordinator import (
    EngineState,
    RewriteCoordinator,
    RunState,
    rewrite_html,
)
from phraselens.engine.subscription import ChangeSubscription, SubscriptionState
from phraselens.engine.tracking import ProcessedTracker
from phraselens.engine.walker import (
    ChunkedWalker,
    is_editable_node,
    should_skip_element,
)

__all__ = [
    "ChangeSubscription",
    "ChunkedWalker",
    "EngineState",
    "ProcessedTracker",
    "RewriteCoordinator",
    "RunState",
    "SubscriptionState",
    "is_editable_node",
    "rewrite_html",
    "should_skip_element",
]
