"""
Tests for landmark-frame parsing and joint lookup.
"""

import json

import pytest

from squat_service.models import (
    Landmark,
    LandmarkParseError,
    PoseLandmark,
    get_landmark,
    landmark_catalog,
    parse_landmark_frame,
)


class TestParseLandmarkFrame:

    def test_none_means_no_detection(self):
        assert parse_landmark_frame(None) is None

    def test_json_null(self):
        assert parse_landmark_frame("null") is None

    def test_json_array(self):
        raw = json.dumps([{"x": 0.1, "y": 0.2, "z": -0.3}, {"x": 1, "y": 2, "z": 3, "visibility": 0.9}])

        frame = parse_landmark_frame(raw)

        assert frame == [
            Landmark(x=0.1, y=0.2, z=-0.3),
            Landmark(x=1.0, y=2.0, z=3.0, visibility=0.9),
        ]

    def test_decoded_list(self, make_payload):
        frame = parse_landmark_frame(make_payload(170))
        assert len(frame) == len(PoseLandmark)
        assert all(isinstance(lm, Landmark) for lm in frame)

    def test_null_entries_preserved(self):
        frame = parse_landmark_frame([None, {"x": 0.5, "y": 0.5}])
        assert frame[0] is None
        assert frame[1] == Landmark(x=0.5, y=0.5, z=0.0)

    def test_missing_z_defaults_to_zero(self):
        assert parse_landmark_frame([{"x": 1, "y": 2}])[0].z == 0.0

    def test_landmark_instances_pass_through(self):
        lm = Landmark(x=0.1, y=0.2)
        assert parse_landmark_frame([lm])[0] is lm

    @pytest.mark.parametrize("payload", [
        {"x": 1, "y": 2},
        42,
        "not json",
        '{"landmarks": []}',
    ])
    def test_rejects_non_list(self, payload):
        with pytest.raises(LandmarkParseError):
            parse_landmark_frame(payload)

    @pytest.mark.parametrize("entry", [
        {"y": 0.5},
        {"x": 0.5},
        {"x": "left", "y": 0.5},
        {"x": None, "y": 0.5},
        [0.5, 0.5],
        "landmark",
    ])
    def test_rejects_bad_entries(self, entry):
        with pytest.raises(LandmarkParseError):
            parse_landmark_frame([entry])

    @pytest.mark.parametrize("entry", [
        {"x": float("nan"), "y": 0.5},
        {"x": 0.5, "y": float("inf")},
        {"x": 0.5, "y": 0.5, "z": float("-inf")},
        {"x": 10 ** 400, "y": 0.5},
    ])
    def test_rejects_non_finite_coordinates(self, entry):
        with pytest.raises(LandmarkParseError):
            parse_landmark_frame([entry])

    def test_rejects_nan_literal_in_json(self):
        with pytest.raises(LandmarkParseError):
            parse_landmark_frame('[{"x": NaN, "y": 0.5}, {"x": Infinity, "y": 0.5}]')

    def test_parse_error_is_value_error(self):
        assert issubclass(LandmarkParseError, ValueError)


class TestLandmarkLookup:

    def test_get_landmark(self, make_frame):
        frame = make_frame(170)
        assert get_landmark(frame, PoseLandmark.LEFT_KNEE) == Landmark(x=0.5, y=0.6, z=0.0)

    def test_out_of_range(self):
        assert get_landmark([Landmark(x=0, y=0)], PoseLandmark.LEFT_HIP) is None

    def test_absent_joint(self, make_frame):
        frame = make_frame(170, missing=[PoseLandmark.LEFT_HIP])
        assert get_landmark(frame, PoseLandmark.LEFT_HIP) is None

    def test_indices_match_mediapipe(self):
        assert PoseLandmark.NOSE.value == 0
        assert PoseLandmark.LEFT_SHOULDER.value == 11
        assert PoseLandmark.LEFT_HIP.value == 23
        assert PoseLandmark.LEFT_KNEE.value == 25
        assert PoseLandmark.LEFT_ANKLE.value == 27
        assert PoseLandmark.RIGHT_FOOT_INDEX.value == 32
        assert len(PoseLandmark) == 33

    def test_catalog(self):
        catalog = landmark_catalog()
        assert catalog[0] == {"id": 0, "name": "nose"}
        assert {"id": 25, "name": "left_knee"} in catalog


class TestLandmark:

    def test_to_dict_round_trip(self):
        lm = Landmark(x=0.1, y=0.2, z=0.3, visibility=0.8)
        assert Landmark.from_dict(lm.to_dict()) == lm

    def test_to_dict_omits_unknown_visibility(self):
        assert Landmark(x=0.1, y=0.2).to_dict() == {"x": 0.1, "y": 0.2, "z": 0.0}
