"""
tests/test_attendance_engine.py — Attendance State Machine
===========================================================

Pure transition logic (no I/O, no database).
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from tally.engine.attendance import (
    CheckedIn,
    CheckedOut,
    Joined,
    NotJoined,
    Transition,
    apply_transition,
    conflict_for,
    state_from_row,
)
from tally.errors import ErrorCode, StateConflict

T0 = datetime(2026, 3, 18, 9, 0, tzinfo=UTC)


def _row(**overrides):
    row = {"id": "join-1", "joined_at": T0, "checked_in_at": None, "checked_out_at": None}
    row.update(overrides)
    return row


class TestStateFromRow:
    def test_missing_row_is_not_joined(self):
        assert state_from_row(None) == NotJoined()

    def test_joined(self):
        assert state_from_row(_row()) == Joined("join-1", T0)

    def test_checked_in(self):
        at = T0 + timedelta(hours=1)
        assert state_from_row(_row(checked_in_at=at)) == CheckedIn("join-1", T0, at)

    def test_checked_out(self):
        cin, cout = T0 + timedelta(hours=1), T0 + timedelta(hours=3)
        state = state_from_row(_row(checked_in_at=cin, checked_out_at=cout))
        assert isinstance(state, CheckedOut)
        assert state.checked_out_at == cout

    def test_checkout_without_checkin_is_rejected(self):
        with pytest.raises(ValueError):
            state_from_row(_row(checked_out_at=T0))


class TestTransitions:
    def test_happy_path(self):
        state = apply_transition(NotJoined(), Transition.JOIN, T0, join_id="j")
        state = apply_transition(state, Transition.CHECK_IN, T0 + timedelta(minutes=5))
        state = apply_transition(state, Transition.CHECK_OUT, T0 + timedelta(hours=2))
        assert isinstance(state, CheckedOut)
        assert state.joined_at <= state.checked_in_at <= state.checked_out_at

    @pytest.mark.parametrize(
        ("state", "transition", "code"),
        [
            (Joined("j", T0), Transition.JOIN, ErrorCode.ALREADY_JOINED),
            (NotJoined(), Transition.CHECK_IN, ErrorCode.NOT_JOINED),
            (CheckedIn("j", T0, T0), Transition.CHECK_IN, ErrorCode.ALREADY_CHECKED_IN),
            (CheckedOut("j", T0, T0, T0), Transition.CHECK_IN, ErrorCode.ALREADY_CHECKED_IN),
            (NotJoined(), Transition.CHECK_OUT, ErrorCode.NOT_JOINED),
            (Joined("j", T0), Transition.CHECK_OUT, ErrorCode.NOT_CHECKED_IN),
            (CheckedOut("j", T0, T0, T0), Transition.CHECK_OUT, ErrorCode.ALREADY_CHECKED_OUT),
            (NotJoined(), Transition.LEAVE, ErrorCode.NOT_JOINED),
            (CheckedOut("j", T0, T0, T0), Transition.LEAVE, ErrorCode.ALREADY_CHECKED_OUT),
        ],
    )
    def test_rejected_transitions(self, state, transition, code):
        with pytest.raises(StateConflict) as exc_info:
            apply_transition(state, transition, T0)
        assert exc_info.value.code == code

    def test_leave_from_checked_in(self):
        assert apply_transition(CheckedIn("j", T0, T0), Transition.LEAVE, T0) == NotJoined()

    def test_skewed_clock_is_clamped(self):
        """A check-in stamped before the join keeps the join time."""
        state = apply_transition(Joined("j", T0), Transition.CHECK_IN, T0 - timedelta(minutes=3))
        assert state.checked_in_at == T0
        out = apply_transition(state, Transition.CHECK_OUT, T0 - timedelta(minutes=1))
        assert out.checked_out_at == T0


class TestConflictFor:
    def test_reports_what_a_second_caller_sees(self):
        err = conflict_for(Transition.CHECK_IN, CheckedIn("j", T0, T0))
        assert err.code == ErrorCode.ALREADY_CHECKED_IN

    def test_falls_back_when_state_now_allows_it(self):
        err = conflict_for(Transition.CHECK_OUT, CheckedIn("j", T0, T0))
        assert err.code == ErrorCode.ALREADY_CHECKED_OUT
