"""
Shared test fixtures: synthetic landmark frames with a chosen knee angle.
"""

import math
from typing import Iterable, List, Optional

import pytest

from squat_service.models import Landmark, PoseLandmark

NUM_LANDMARKS = len(PoseLandmark)

KNEE = (0.5, 0.6)
THIGH_LENGTH = 0.2
SHIN_LENGTH = 0.2


def build_frame(
    knee_angle: float = 170.0,
    shoulder: Optional[Landmark] = None,
    missing: Iterable[PoseLandmark] = (),
) -> List[Optional[Landmark]]:
    """
    Left-side skeleton with the hip straight above the knee and the ankle
    rotated so that hip-knee-ankle forms `knee_angle` degrees.
    """
    frame: List[Optional[Landmark]] = [Landmark(x=0.0, y=0.0, z=0.0) for _ in range(NUM_LANDMARKS)]

    kx, ky = KNEE
    theta = math.radians(knee_angle)
    hip = Landmark(x=kx, y=ky - THIGH_LENGTH, z=-0.1)
    ankle = Landmark(x=kx + SHIN_LENGTH * math.sin(theta), y=ky - SHIN_LENGTH * math.cos(theta), z=0.2)

    frame[PoseLandmark.LEFT_HIP.value] = hip
    frame[PoseLandmark.LEFT_KNEE.value] = Landmark(x=kx, y=ky, z=0.0)
    frame[PoseLandmark.LEFT_ANKLE.value] = ankle
    frame[PoseLandmark.LEFT_SHOULDER.value] = shoulder or Landmark(x=kx, y=hip.y - 0.3, z=0.0)

    for joint in missing:
        frame[joint.value] = None

    return frame


def frame_payload(knee_angle: float = 170.0, **kwargs) -> list:
    """JSON-ready version of build_frame, as posted by the detection client."""
    return [lm.to_dict() if lm else None for lm in build_frame(knee_angle, **kwargs)]


@pytest.fixture
def make_frame():
    return build_frame


@pytest.fixture
def make_payload():
    return frame_payload
