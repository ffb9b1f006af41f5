from .config import CATEGORIES, SEVERITIES, PipelineConfig
from .models import (
    BoundingBox,
    Corridor,
    Draft,
    DraftCandidate,
    Incident,
    Operation,
    RiskAssessment,
    RiskZone,
    Waypoint,
)

__all__ = [
    "CATEGORIES",
    "SEVERITIES",
    "PipelineConfig",
    "BoundingBox",
    "Corridor",
    "Draft",
    "DraftCandidate",
    "Incident",
    "Operation",
    "RiskAssessment",
    "RiskZone",
    "Waypoint",
]
