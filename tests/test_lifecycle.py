import pytest

from app.domain.exceptions import InvalidStateTransitionError
from app.domain.models.invoice import InvoiceState
from app.domain.models.lifecycle import can_transition, ensure_transition, is_terminal

S = InvoiceState


class TestTransitions:
    @pytest.mark.parametrize("current,target", [
        (S.QUEUED, S.PROCESSING),
        (S.PROCESSING, S.ACCEPTED),
        (S.PROCESSING, S.REJECTED),
        (S.PROCESSING, S.SUBMITTED),
        (S.PROCESSING, S.PROCESSING),
        (S.PROCESSING, S.ERROR),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (S.QUEUED, S.ACCEPTED),
        (S.ACCEPTED, S.PROCESSING),
        (S.REJECTED, S.PROCESSING),
        (S.SUBMITTED, S.ACCEPTED),
        (S.ERROR, S.ACCEPTED),
    ])
    def test_forbidden(self, current, target):
        assert not can_transition(current, target)
        assert not can_transition(current, target, retry=True)

    def test_error_to_processing_needs_retry(self):
        assert not can_transition(S.ERROR, S.PROCESSING)
        assert can_transition(S.ERROR, S.PROCESSING, retry=True)

    def test_ensure_transition_raises(self):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            ensure_transition(S.ACCEPTED, S.PROCESSING)
        assert exc_info.value.current == "accepted"
        assert exc_info.value.target == "processing"

    def test_terminal_states(self):
        assert is_terminal(S.ACCEPTED)
        assert is_terminal(S.REJECTED)
        assert is_terminal(S.ERROR)
        assert not is_terminal(S.QUEUED)
        assert not is_terminal(S.SUBMITTED)
