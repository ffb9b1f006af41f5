"""Error taxonomy for the brief-to-incident pipeline.

Only structural violations are raised to callers.  Per-item outcomes such as
"no place names found" or "buffer undefined" are expressed as empty results
(empty set, ``None``, ``0.0``) rather than exceptions.
"""

from __future__ import annotations


class CorridorPlannerError(Exception):
    """Base class for errors surfaced to callers."""


class InvalidStateTransition(CorridorPlannerError):
    def __init__(self, draft_id: str, current: str, target: str) -> None:
        super().__init__(f"Draft {draft_id} cannot move from {current} to {target}")
        self.draft_id = draft_id
        self.current = current
        self.target = target


class DraftNotFound(CorridorPlannerError):
    def __init__(self, draft_id: str) -> None:
        super().__init__(f"Draft not found: {draft_id}")
        self.draft_id = draft_id


class OperationNotFound(CorridorPlannerError):
    def __init__(self, operation_id: str) -> None:
        super().__init__(f"Operation not found: {operation_id}")
        self.operation_id = operation_id


class BriefInUse(CorridorPlannerError):
    def __init__(self, brief_id: str) -> None:
        super().__init__(f"Brief {brief_id} is referenced by drafts; archive it instead")
        self.brief_id = brief_id


class MalformedRoute(CorridorPlannerError):
    """A waypoint list contains entries that are not usable coordinates."""


class GeocodeRejected(CorridorPlannerError):
    """External lookup produced no acceptable candidate.

    Raised inside the resolver and converted to ``None`` before it reaches a
    caller.
    """

    def __init__(self, place_name: str, reason: str) -> None:
        super().__init__(f"Geocode rejected for {place_name!r}: {reason}")
        self.place_name = place_name
        self.reason = reason
