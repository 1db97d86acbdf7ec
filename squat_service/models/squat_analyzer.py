"""
FORMCOACH Squat Service - Squat Analyzer

Rule-based squat form classification and repetition counting over a stream
of pose landmark frames. Works on already-detected landmarks; it knows nothing
about the pose model or how frames are delivered.
"""

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .geometry import calculate_angle
from .landmarks import Landmark, LandmarkFrame, PoseLandmark, get_landmark

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# THRESHOLDS
# ═══════════════════════════════════════════════════════════════════════════════

STANDING_KNEE_ANGLE = 160      # above: legs straight
SQUAT_KNEE_ANGLE = 100         # below: in the squat
KNEE_OVERBENT_ANGLE = 70
KNEE_SHALLOW_ANGLE = 140
TRUNK_LEAN_MAX_ANGLE = 30
REP_DEBOUNCE_SECONDS = 1.0


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS AND DATA CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class Feedback(str, Enum):
    """Feedback labels shown to the user after each frame."""
    WAITING = "waiting"
    STOPPED = "stopped"
    STARTING = "starting"
    INCOMPLETE = "incomplete"
    KNEE_BENT_EXCESSIVELY = "knee bent excessively"
    NOT_LOW_ENOUGH = "squat not low enough"
    FORWARD_LEAN = "excessive forward lean"
    FORM_CORRECT = "form correct"
    ANALYSIS_ERROR = "analysis error"

    @property
    def message(self) -> str:
        return FEEDBACK_MESSAGES[self]


FEEDBACK_MESSAGES = {
    Feedback.WAITING: "Waiting for detection...",
    Feedback.STOPPED: "Analysis stopped",
    Feedback.STARTING: "Starting analysis...",
    Feedback.INCOMPLETE: "Body landmarks not fully detected",
    Feedback.KNEE_BENT_EXCESSIVELY: "Knees bent too far",
    Feedback.NOT_LOW_ENOUGH: "Squat lower",
    Feedback.FORWARD_LEAN: "Keep your back more upright",
    Feedback.FORM_CORRECT: "Good form!",
    Feedback.ANALYSIS_ERROR: "Error during analysis",
}


@dataclass
class AnalysisState:
    """Mutable analysis state. Owned and mutated only by SquatAnalyzer."""
    rep_count: int = 0
    previous_knee_angle: Optional[float] = None
    last_rep_timestamp: Optional[float] = None
    is_analyzing: bool = True
    feedback: Feedback = Feedback.WAITING

    # Last computed angles, for display only
    knee_angle: Optional[float] = None
    trunk_angle: Optional[float] = None


@dataclass(frozen=True)
class AnalysisSnapshot:
    """Read-only view of the analysis state handed to consumers."""
    rep_count: int
    feedback: Feedback
    is_analyzing: bool
    knee_angle: Optional[float] = None
    trunk_angle: Optional[float] = None

    @property
    def message(self) -> str:
        return self.feedback.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "rep_count": self.rep_count,
            "feedback": self.feedback.value,
            "message": self.message,
            "is_analyzing": self.is_analyzing,
            "knee_angle": round(self.knee_angle, 1) if self.knee_angle is not None else None,
            "trunk_angle": round(self.trunk_angle, 1) if self.trunk_angle is not None else None,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# SQUAT ANALYZER
# ═══════════════════════════════════════════════════════════════════════════════

class SquatAnalyzer:
    """
    Squat form analyzer and rep counter.

    Uses the left-side hip, knee, ankle and shoulder of each frame:
    - knee angle (hip-knee-ankle) drives rep counting and depth feedback
    - trunk angle (vertical-shoulder-hip) measures forward lean

    A rep is counted on the return to standing after a squat. Transitions
    closer together than REP_DEBOUNCE_SECONDS are ignored.
    """

    REQUIRED_JOINTS = (
        PoseLandmark.LEFT_HIP,
        PoseLandmark.LEFT_KNEE,
        PoseLandmark.LEFT_ANKLE,
        PoseLandmark.LEFT_SHOULDER,
    )

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Initialize analyzer.

        Args:
            clock: Wall-clock source in seconds, read once per frame
        """
        self._clock = clock
        self._state = AnalysisState()

    @property
    def state(self) -> AnalysisState:
        return self._state

    def snapshot(self) -> AnalysisSnapshot:
        s = self._state
        return AnalysisSnapshot(
            rep_count=s.rep_count,
            feedback=s.feedback,
            is_analyzing=s.is_analyzing,
            knee_angle=s.knee_angle,
            trunk_angle=s.trunk_angle,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # FRAME PROCESSING
    # ═══════════════════════════════════════════════════════════════════════════

    def on_frame(
        self,
        frame: Optional[LandmarkFrame],
        timestamp: Optional[float] = None
    ) -> AnalysisSnapshot:
        """
        Process one detection cycle.

        Args:
            frame: Landmarks indexed by PoseLandmark, or None if nothing was detected
            timestamp: Frame time in seconds (defaults to the wall clock)

        Returns:
            Snapshot of the state after this frame
        """
        if not self._state.is_analyzing:
            self._state.feedback = Feedback.STOPPED
            return self.snapshot()

        if frame is None:
            self._state.feedback = Feedback.WAITING
            return self.snapshot()

        try:
            self._analyze(frame, self._clock() if timestamp is None else timestamp)
        except Exception as e:
            logger.error(f"Error analyzing pose: {type(e).__name__}: {e}")
            self._state.feedback = Feedback.ANALYSIS_ERROR

        return self.snapshot()

    def record_error(self, error: Exception) -> AnalysisSnapshot:
        """Report a frame that failed before reaching the analyzer (e.g. bad payload)."""
        if not self._state.is_analyzing:
            self._state.feedback = Feedback.STOPPED
        else:
            logger.warning(f"Rejected frame: {error}")
            self._state.feedback = Feedback.ANALYSIS_ERROR
        return self.snapshot()

    def _analyze(self, frame: LandmarkFrame, now: float):
        hip, knee, ankle, shoulder = (
            get_landmark(frame, joint) for joint in self.REQUIRED_JOINTS
        )
        if hip is None or knee is None or ankle is None or shoulder is None:
            self._state.feedback = Feedback.INCOMPLETE
            return

        knee_angle = calculate_angle(hip, knee, ankle)

        # Reference point one unit straight up from the shoulder
        vertical = Landmark(x=shoulder.x, y=shoulder.y - 1, z=0.0)
        trunk_angle = calculate_angle(vertical, shoulder, hip)

        if not (math.isfinite(knee_angle) and math.isfinite(trunk_angle)):
            raise ValueError(f"Non-finite angles (knee={knee_angle}, trunk={trunk_angle})")

        # All math done; commit
        self._count_rep(knee_angle, now)
        self._state.knee_angle = knee_angle
        self._state.trunk_angle = trunk_angle
        self._state.feedback = self.classify_form(knee_angle, trunk_angle)

    def _count_rep(self, knee_angle: float, now: float):
        s = self._state
        previous = s.previous_knee_angle

        if previous is not None and self._debounce_elapsed(now):
            if previous > STANDING_KNEE_ANGLE and knee_angle < SQUAT_KNEE_ANGLE:
                # Down into the squat; counted on the way up
                s.last_rep_timestamp = now
            elif previous < SQUAT_KNEE_ANGLE and knee_angle > STANDING_KNEE_ANGLE:
                s.rep_count += 1
                s.last_rep_timestamp = now
                logger.debug(f"Rep {s.rep_count} counted (knee {knee_angle:.1f}°)")

        s.previous_knee_angle = knee_angle

    def _debounce_elapsed(self, now: float) -> bool:
        last = self._state.last_rep_timestamp
        return last is None or now - last >= REP_DEBOUNCE_SECONDS

    @staticmethod
    def classify_form(knee_angle: float, trunk_angle: float) -> Feedback:
        """Classify squat form; first matching rule wins."""
        if knee_angle < KNEE_OVERBENT_ANGLE:
            return Feedback.KNEE_BENT_EXCESSIVELY
        if knee_angle > KNEE_SHALLOW_ANGLE:
            return Feedback.NOT_LOW_ENOUGH
        if trunk_angle > TRUNK_LEAN_MAX_ANGLE:
            return Feedback.FORWARD_LEAN
        return Feedback.FORM_CORRECT

    # ═══════════════════════════════════════════════════════════════════════════
    # CONTROLS
    # ═══════════════════════════════════════════════════════════════════════════

    def toggle_analyzing(self) -> AnalysisSnapshot:
        """Start or stop analysis. Counters are kept."""
        s = self._state
        s.is_analyzing = not s.is_analyzing
        s.feedback = Feedback.STARTING if s.is_analyzing else Feedback.STOPPED
        logger.info(f"Analysis {'started' if s.is_analyzing else 'stopped'}")
        return self.snapshot()

    def reset(self) -> AnalysisSnapshot:
        """Clear counters and angle history. Does not change is_analyzing."""
        s = self._state
        s.rep_count = 0
        s.previous_knee_angle = None
        s.last_rep_timestamp = None
        s.knee_angle = None
        s.trunk_angle = None
        s.feedback = Feedback.WAITING
        return self.snapshot()
