"""Hiring stage graph and transition legality."""

from enum import Enum
from typing import Dict, Optional, Tuple


class Stage(str, Enum):
    """Pipeline stage of an application."""
    NEW = "new"
    REVIEWED = "reviewed"
    INTERVIEW = "interview"
    HIRED = "hired"
    REJECTED = "rejected"


# Ordered advancing chain; REJECTED is a side branch outside it
ADVANCING_CHAIN: Tuple[Stage, ...] = (
    Stage.NEW,
    Stage.REVIEWED,
    Stage.INTERVIEW,
    Stage.HIRED,
)

TERMINAL_STAGES = frozenset({Stage.HIRED, Stage.REJECTED})

# Kanban column order: the chain, then the rejected side column
KANBAN_COLUMNS: Tuple[Stage, ...] = ADVANCING_CHAIN + (Stage.REJECTED,)

STAGE_LABELS: Dict[Stage, str] = {
    Stage.NEW: "New Applicants",
    Stage.REVIEWED: "Reviewed",
    Stage.INTERVIEW: "Interview Stage",
    Stage.HIRED: "Hired",
    Stage.REJECTED: "Rejected",
}


def is_terminal(stage: Stage) -> bool:
    return Stage(stage) in TERMINAL_STAGES


def stage_index(stage: Stage) -> Optional[int]:
    """Position of a stage in the advancing chain, None for REJECTED."""
    stage = Stage(stage)
    if stage not in ADVANCING_CHAIN:
        return None
    return ADVANCING_CHAIN.index(stage)


def next_stage(stage: Stage) -> Optional[Stage]:
    """Immediate successor in the chain, None at a terminal stage."""
    stage = Stage(stage)
    if stage in TERMINAL_STAGES:
        return None
    return ADVANCING_CHAIN[ADVANCING_CHAIN.index(stage) + 1]


def check_transition(from_stage: Stage, to_stage: Stage) -> Tuple[bool, str]:
    """
    Check whether an application may move between two stages.
    
    Legal moves are the no-op, one step forward along the advancing chain,
    and a move into REJECTED from any non-terminal stage.
    
    Args:
        from_stage: Current stage
        to_stage: Requested stage
        
    Returns:
        Tuple of (is_legal, reason)
    """
    from_stage = Stage(from_stage)
    to_stage = Stage(to_stage)
    
    if from_stage == to_stage:
        return True, "No-op transition"
    
    if from_stage in TERMINAL_STAGES:
        return False, f"Cannot transition from terminal stage {from_stage.value}"
    
    if to_stage == Stage.REJECTED:
        return True, "Transition is allowed"
    
    if next_stage(from_stage) == to_stage:
        return True, "Transition is allowed"
    
    if stage_index(to_stage) < stage_index(from_stage):
        return False, f"Cannot move back from {from_stage.value} to {to_stage.value}"
    
    return False, (
        f"Cannot skip from {from_stage.value} to {to_stage.value}; "
        f"next stage is {next_stage(from_stage).value}"
    )


def is_legal_transition(from_stage: Stage, to_stage: Stage) -> bool:
    return check_transition(from_stage, to_stage)[0]
