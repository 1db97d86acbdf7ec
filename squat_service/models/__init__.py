"""
FORMCOACH Squat Service Models

Landmark geometry, rule-based squat analysis, and session management.
"""

from .geometry import calculate_angle, calculate_distance

from .landmarks import (
    Landmark,
    LandmarkFrame,
    LandmarkParseError,
    PoseLandmark,
    get_landmark,
    landmark_catalog,
    parse_landmark_frame
)

from .squat_analyzer import (
    AnalysisSnapshot,
    AnalysisState,
    Feedback,
    SquatAnalyzer
)

from .squat_session import (
    SessionLimitError,
    SessionNotFoundError,
    SquatSession,
    SquatSessionManager,
    get_session_manager
)

__all__ = [
    # Geometry
    "calculate_angle",
    "calculate_distance",
    # Landmarks
    "Landmark",
    "LandmarkFrame",
    "LandmarkParseError",
    "PoseLandmark",
    "get_landmark",
    "landmark_catalog",
    "parse_landmark_frame",
    # Analyzer
    "AnalysisSnapshot",
    "AnalysisState",
    "Feedback",
    "SquatAnalyzer",
    # Sessions
    "SessionLimitError",
    "SessionNotFoundError",
    "SquatSession",
    "SquatSessionManager",
    "get_session_manager",
]
