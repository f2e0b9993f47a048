"""Tests for the stage graph."""

import pytest

from ats_pipeline.models.stage import (
    ADVANCING_CHAIN,
    KANBAN_COLUMNS,
    STAGE_LABELS,
    Stage,
    check_transition,
    is_legal_transition,
    is_terminal,
    next_stage,
    stage_index,
)

N, R, I, H, X = Stage.NEW, Stage.REVIEWED, Stage.INTERVIEW, Stage.HIRED, Stage.REJECTED

# Full legal-transition table: rows are the current stage, columns the target
LEGAL_TABLE = {
    N: {N: True, R: True, I: False, H: False, X: True},
    R: {N: False, R: True, I: True, H: False, X: True},
    I: {N: False, R: False, I: True, H: True, X: True},
    H: {N: False, R: False, I: False, H: True, X: False},
    X: {N: False, R: False, I: False, H: False, X: True},
}


class TestStageModel:
    """Test stage ordering and transition legality."""
    
    def test_stage_set_and_order(self):
        """Test the canonical stage list and chain order."""
        assert [s.value for s in Stage] == ["new", "reviewed", "interview", "hired", "rejected"]
        assert ADVANCING_CHAIN == (N, R, I, H)
        assert KANBAN_COLUMNS == (N, R, I, H, X)
        assert set(STAGE_LABELS) == set(Stage)
    
    @pytest.mark.parametrize("from_stage", list(Stage))
    @pytest.mark.parametrize("to_stage", list(Stage))
    def test_legal_transition_table(self, from_stage, to_stage):
        """Test every cell of the transition table."""
        assert is_legal_transition(from_stage, to_stage) is LEGAL_TABLE[from_stage][to_stage]
    
    def test_skipping_to_hired_is_illegal(self):
        """Test that a new candidate cannot be hired directly."""
        legal, reason = check_transition(N, H)
        
        assert legal is False
        assert "next stage is reviewed" in reason
    
    def test_moving_back_is_illegal(self):
        """Test that backward moves are rejected with a clear reason."""
        legal, reason = check_transition(I, R)
        
        assert legal is False
        assert "Cannot move back" in reason
    
    def test_terminal_stage_reason(self):
        """Test the reason reported for moves out of a terminal stage."""
        legal, reason = check_transition(H, X)
        
        assert legal is False
        assert "terminal stage hired" in reason
    
    def test_accepts_string_values(self):
        """Test that raw stage strings are accepted."""
        assert is_legal_transition("interview", "hired") is True
        assert is_legal_transition("hired", "new") is False
    
    def test_stage_index(self):
        """Test chain positions; rejected sits outside the chain."""
        assert [stage_index(s) for s in ADVANCING_CHAIN] == [0, 1, 2, 3]
        assert stage_index(X) is None
    
    def test_next_stage(self):
        """Test the advance helper."""
        assert next_stage(N) == R
        assert next_stage(I) == H
        assert next_stage(H) is None
        assert next_stage(X) is None
    
    def test_terminal_stages(self):
        """Test which stages are terminal."""
        assert {s for s in Stage if is_terminal(s)} == {H, X}
    
    def test_unknown_stage_raises(self):
        """Test that unknown stage names are rejected."""
        with pytest.raises(ValueError):
            is_legal_transition("new", "offered")
