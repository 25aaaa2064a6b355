"""
Two-step edge creation gesture.

    Idle --context(A)--> SourceMarked(A) --context(B)--> Idle   emits create_edge(A, B)
                         SourceMarked(A) --background--> Idle   no request
                         SourceMarked(A) --A removed-->  Idle   no request

The state machine only produces the request. The edge shows up in the
mirror later, if and when the authority confirms it with add_edge.
"""

import logging
from enum import Enum
from typing import Callable, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

MarkerCallback = Callable[[str, bool], None]


class EdgeCreationState(Enum):
    IDLE = "idle"
    SOURCE_MARKED = "source_marked"


class EdgeCreationStateMachine:
    """One pending gesture slot, owned by a single canvas controller."""

    def __init__(self, on_marker: Optional[MarkerCallback] = None):
        self._source_id: Optional[str] = None
        self._on_marker = on_marker

    @property
    def state(self) -> EdgeCreationState:
        return EdgeCreationState.IDLE if self._source_id is None else EdgeCreationState.SOURCE_MARKED

    @property
    def source_id(self) -> Optional[str]:
        return self._source_id

    def mark(self, node_id: str) -> Optional[Tuple[str, str]]:
        """
        Handle the contextual gesture on a node.

        Returns:
            (source_id, target_id) when this gesture completes an edge, else None.
            A self-loop is returned as-is; the authority decides whether to accept it.
        """
        if self._source_id is None:
            self._source_id = node_id
            self._set_marker(node_id, True)
            logger.debug(f"Edge source marked: {node_id}")
            return None

        source_id = self._source_id
        self._reset()
        logger.debug(f"Edge gesture complete: {source_id} -> {node_id}")
        return source_id, node_id

    def cancel(self) -> bool:
        """Drop a marked source. Returns True if there was one."""
        if self._source_id is None:
            return False
        logger.debug(f"Edge gesture cancelled: {self._source_id}")
        self._reset()
        return True

    def nodes_removed(self, node_ids: Iterable[str]) -> bool:
        """Return to Idle if the marked source was among the removed nodes."""
        if self._source_id is None or self._source_id not in set(node_ids):
            return False
        logger.info(f"Edge source {self._source_id} was removed, gesture abandoned")
        # The node is gone from the engine too, so no marker to clear
        self._source_id = None
        return True

    def _reset(self) -> None:
        source_id = self._source_id
        self._source_id = None
        if source_id is not None:
            self._set_marker(source_id, False)

    def _set_marker(self, node_id: str, active: bool) -> None:
        if self._on_marker:
            self._on_marker(node_id, active)
