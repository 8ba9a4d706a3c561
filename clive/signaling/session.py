"""
The session aggregate owned by the negotiation coordinator.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, List, Optional

from .messages import Candidate, Role, SessionEndpoint


class NegotiationState(str, Enum):
    IDLE = "idle"
    AWAITING_PEER = "awaiting-peer"
    OFFER_CREATING = "offer-creating"
    OFFER_SENT = "offer-sent"
    AWAITING_ANSWER = "awaiting-answer"
    ANSWER_CREATING = "answer-creating"
    ANSWER_SENT = "answer-sent"
    NEGOTIATED = "negotiated"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (NegotiationState.CLOSED, NegotiationState.FAILED)


@dataclass
class Session:
    """
    Everything one call knows about itself.

    ``round`` counts offer/answer exchanges; ``remote_applied`` tracks whether
    the remote description of the current round has been set.  Remote
    candidates that arrive before that are parked in ``pending_candidates``.
    """

    role: Role
    endpoint: SessionEndpoint
    state: NegotiationState = NegotiationState.IDLE
    round: int = 0
    remote_applied: bool = False
    transport_open: bool = False
    terminal_reason: Optional[str] = None
    pending_candidates: Deque[Candidate] = field(default_factory=deque)

    @property
    def is_caller(self) -> bool:
        return self.role is Role.CALLER

    def start_round(self) -> int:
        self.round += 1
        self.remote_applied = False
        return self.round

    def enqueue_candidate(self, candidate: Candidate) -> None:
        self.pending_candidates.append(candidate)

    def drain_candidates(self) -> List[Candidate]:
        drained = list(self.pending_candidates)
        self.pending_candidates.clear()
        return drained

    def to_dict(self) -> dict:
        return {
            "role": self.role.value,
            "room": self.endpoint.room,
            "server": self.endpoint.server,
            "state": self.state.value,
            "round": self.round,
            "remoteApplied": self.remote_applied,
            "transportOpen": self.transport_open,
            "pendingCandidates": len(self.pending_candidates),
            "terminalReason": self.terminal_reason,
        }
