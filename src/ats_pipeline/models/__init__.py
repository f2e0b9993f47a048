"""Domain models for the application pipeline."""

from .stage import (
    Stage,
    ADVANCING_CHAIN,
    TERMINAL_STAGES,
    KANBAN_COLUMNS,
    STAGE_LABELS,
    is_legal_transition,
    check_transition,
    stage_index,
    next_stage,
    is_terminal,
)

__all__ = [
    "Stage",
    "ADVANCING_CHAIN",
    "TERMINAL_STAGES",
    "KANBAN_COLUMNS",
    "STAGE_LABELS",
    "is_legal_transition",
    "check_transition",
    "stage_index",
    "next_stage",
    "is_terminal",
]
