"""
FORMCOACH Squat Service - Landmarks

Landmark data types, the MediaPipe Pose joint numbering, and parsing of
landmark-frame payloads posted by the detection client.
"""

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class PoseLandmark(Enum):
    """MediaPipe Pose landmark indices."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


@dataclass(frozen=True)
class Landmark:
    """A single pose landmark in the producer's normalized coordinate space."""
    x: float
    y: float
    z: float = 0.0
    visibility: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Landmark":
        try:
            visibility = data.get("visibility")
            landmark = cls(
                x=float(data["x"]),
                y=float(data["y"]),
                z=float(data.get("z") or 0.0),
                visibility=float(visibility) if visibility is not None else None,
            )
        except KeyError as e:
            raise LandmarkParseError(f"Landmark missing coordinate {e}") from e
        except (TypeError, ValueError, OverflowError) as e:
            raise LandmarkParseError(f"Invalid landmark coordinates: {data!r}") from e

        if not landmark.is_finite():
            raise LandmarkParseError(f"Non-finite landmark coordinates: {data!r}")
        return landmark

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.z))

    def to_dict(self) -> Dict[str, Any]:
        data = {"x": self.x, "y": self.y, "z": self.z}
        if self.visibility is not None:
            data["visibility"] = self.visibility
        return data


# One detection cycle; entries are None where a joint was not detected.
LandmarkFrame = Sequence[Optional[Landmark]]


class LandmarkParseError(ValueError):
    """Raised when a landmark-frame payload cannot be decoded."""


def parse_landmark_frame(payload: Any) -> Optional[List[Optional[Landmark]]]:
    """
    Decode a landmark-frame payload.

    Accepts either a JSON string or an already-decoded value. The detection
    client posts a JSON array of {x, y, z} objects; null means no detection.

    Returns:
        List of landmarks (None for undetected joints), or None for no frame

    Raises:
        LandmarkParseError: If the payload is not a list of landmark objects
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise LandmarkParseError(f"Invalid JSON: {e}") from e

    if payload is None:
        return None

    if not isinstance(payload, list):
        raise LandmarkParseError(
            f"Expected a list of landmarks, got {type(payload).__name__}"
        )

    frame: List[Optional[Landmark]] = []
    for item in payload:
        if item is None:
            frame.append(None)
        elif isinstance(item, Landmark):
            frame.append(item)
        elif isinstance(item, dict):
            frame.append(Landmark.from_dict(item))
        else:
            raise LandmarkParseError(f"Invalid landmark entry: {item!r}")

    return frame


def get_landmark(frame: LandmarkFrame, joint: PoseLandmark) -> Optional[Landmark]:
    """Look up a joint in a frame; None if the frame is too short or the joint is absent."""
    if joint.value >= len(frame):
        return None
    return frame[joint.value]


def landmark_catalog() -> List[Dict[str, Any]]:
    """JSON-serializable list of the joint numbering."""
    return [
        {"id": joint.value, "name": joint.name.lower()}
        for joint in PoseLandmark
    ]
