"""Scout lifecycle engine."""

from scout_service.scouts.lifecycle import PollOutcome, ScoutLifecycle

__all__ = ["PollOutcome", "ScoutLifecycle"]
