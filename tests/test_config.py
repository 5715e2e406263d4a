"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

import textwrap

import pytest

from tally.config import load_config

FLAT = """
community_name: Riverside Volunteers
awards:
  policy: flat
  checkin_points: 10
  checkout_points: 5
streaks:
  week_start: Sunday
  timezone: America/Chicago
"""


def _write(tmp_path, body: str):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


class TestLoadConfig:
    def test_flat(self, tmp_path):
        cfg = load_config(_write(tmp_path, FLAT))
        assert cfg.community_name == "Riverside Volunteers"
        assert cfg.award_policy == "flat"
        assert (cfg.checkin_points, cfg.checkout_points) == (10, 5)
        assert cfg.week_start == 6
        assert cfg.tz.key == "America/Chicago"
        assert cfg.api_port == 8000

    def test_duration(self, tmp_path):
        body = FLAT.replace("policy: flat", "policy: duration").replace(
            "checkout_points: 5", "points_per_hour: 12\n  max_hours: 4"
        )
        cfg = load_config(_write(tmp_path, body))
        assert cfg.award_policy == "duration"
        assert cfg.points_per_hour == 12
        assert cfg.max_award_hours == 4
        assert cfg.checkout_points == 0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "absent.yaml")

    def test_week_boundary_is_required(self, tmp_path):
        body = FLAT.replace("  week_start: Sunday\n", "")
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, body))

    @pytest.mark.parametrize(
        ("old", "new"),
        [
            ("policy: flat", "policy: lottery"),
            ("week_start: Sunday", "week_start: Funday"),
            ("timezone: America/Chicago", "timezone: Mars/Olympus"),
        ],
    )
    def test_bad_values(self, tmp_path, old, new):
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, FLAT.replace(old, new)))
