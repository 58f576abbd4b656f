#!/usr/bin/env python3
"""
Progress Tracker
Turns the stream of tracking-column values into a blocks-processed counter

Rows of one data-chunk arrive in a contiguous run. A chunk's blocks are
credited when the stream moves away from it, so the chunk being read last is
never credited and the ratio is a lower bound that does not reach 1.0 while
the cursor is open.
"""

from dataclasses import dataclass, replace
from typing import Any, Optional, Tuple

from chunkread.enhanced_logger import logger
from chunkread.metadata import TRACKING_COLUMN_NAME
from chunkread.split import Split


@dataclass(frozen=True)
class ProgressState:
    """Progress of one worker through its split"""
    blocks_processed: int = 0
    current_chunk_id: Optional[str] = None
    error_logged: bool = False


def observe_chunk(state: ProgressState, split: Split, tracking_value: Any) -> ProgressState:
    """
    Advance the progress state for one row's tracking value

    Args:
        state: Current state
        split: Split being read
        tracking_value: Data-chunk id carried by the row, or None

    Returns:
        New state (the same object when nothing changed)
    """
    if tracking_value is None:
        return state

    chunk_id = str(tracking_value)
    if chunk_id == state.current_chunk_id:
        return state

    blocks_processed = state.blocks_processed
    if state.current_chunk_id:
        previous_chunk = split.find_chunk_by_id(state.current_chunk_id)
        if previous_chunk is not None:
            blocks_processed += previous_chunk.block_count

    return replace(state, blocks_processed=blocks_processed, current_chunk_id=chunk_id)


def record_extraction_failure(state: ProgressState) -> Tuple[ProgressState, bool]:
    """Returns the new state and whether this failure should be logged"""
    if state.error_logged:
        return state, False
    return replace(state, error_logged=True), True


def ratio_complete(state: ProgressState, split: Split) -> float:
    if split.total_blocks <= 0:
        return 0.0
    return state.blocks_processed / float(split.total_blocks)


class ProgressTracker:
    """
    Holds the progress state of one split read. Owned by a single thread.
    """

    def __init__(self, split: Split):
        self.split = split
        self.state = ProgressState()

    def observe(self, tracking_value: Any):
        self.state = observe_chunk(self.state, self.split, tracking_value)

    def record_extraction_failure(self, error: BaseException, column_index: int):
        """Log the first failure to read the tracking value; later ones are silent"""
        self.state, should_log = record_extraction_failure(self.state)
        if should_log:
            logger.warning(
                f"Unable to obtain the value of the {TRACKING_COLUMN_NAME} column.\n"
                f"\tcolumn index = {column_index} (zero-based)\n"
                f"\tAs a consequence, progress for split {self.split.split_id} cannot be calculated.\n"
                f"\tError=\n{error}"
            )

    @property
    def blocks_processed(self) -> int:
        return self.state.blocks_processed

    @property
    def current_chunk_id(self) -> Optional[str]:
        return self.state.current_chunk_id

    def ratio_complete(self) -> float:
        return ratio_complete(self.state, self.split)
