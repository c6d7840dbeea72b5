"""
Negotiation state machine.

States:

    WAITING_FIRST_MOVE ──propose──► AWAITING_ARTIST ◄──propose──► AWAITING_ORGANIZER
            │                              │                              │
            └──────────── accept ──────────┴──────────────┬───────────────┘
                          decline                         ▼
                                                ACCEPTED | DECLINED  (terminal, locked)

Whose turn it is lives in `turn` (a Party); the node name is derived from
it, so a state whose node and turn disagree cannot be constructed.

Guard order for every action: locked -> (propose only) round cap -> turn.
At the round cap a proposal is rejected regardless of who asks; only accept
or decline remain.

Every successful transition yields exactly one typed event for the
append-only history log.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import ClassVar, Optional, Union

from gigflow.core.errors import MaxRoundsReached, NegotiationLocked, NotYourTurn
from gigflow.engine.parties import Party

MAX_ROUNDS = 3
TURN_HOURS = 24


class NegotiationNode(str, Enum):
    WAITING_FIRST_MOVE = "WAITING_FIRST_MOVE"
    AWAITING_ARTIST = "AWAITING_ARTIST"
    AWAITING_ORGANIZER = "AWAITING_ORGANIZER"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"

    @property
    def is_terminal(self) -> bool:
        return self in (NegotiationNode.ACCEPTED, NegotiationNode.DECLINED)


class NegotiationAction(str, Enum):
    PROPOSE_CHANGE = "PROPOSE_CHANGE"
    ACCEPT = "ACCEPT"
    DECLINE = "DECLINE"


AWAITING_NODE = {
    Party.ARTIST: NegotiationNode.AWAITING_ARTIST,
    Party.PROMOTER: NegotiationNode.AWAITING_ORGANIZER,
}


@dataclass(frozen=True)
class NegotiationState:
    node: NegotiationNode
    round: int
    turn: Optional[Party]
    max_rounds: int = MAX_ROUNDS
    deadline_at: Optional[datetime] = None

    def __post_init__(self):
        if self.round < 0 or self.round > self.max_rounds:
            raise ValueError(f"round {self.round} outside 0..{self.max_rounds}")
        if self.node.is_terminal:
            if self.turn is not None:
                raise ValueError("terminal negotiation cannot await a party")
        elif self.turn is None:
            raise ValueError("open negotiation must await exactly one party")
        elif self.node != NegotiationNode.WAITING_FIRST_MOVE and AWAITING_NODE[self.turn] != self.node:
            raise ValueError(f"{self.node.value} does not match turn {self.turn.value}")

    @property
    def locked(self) -> bool:
        return self.node.is_terminal

    @property
    def can_propose(self) -> bool:
        return not self.locked and self.round < self.max_rounds


def open_state(
    first_to_act: Party,
    now: datetime,
    max_rounds: int = MAX_ROUNDS,
    turn_hours: int = TURN_HOURS,
) -> NegotiationState:
    return NegotiationState(
        node=NegotiationNode.WAITING_FIRST_MOVE,
        round=0,
        turn=first_to_act,
        max_rounds=max_rounds,
        deadline_at=now + timedelta(hours=turn_hours),
    )


# ---------------------------------------------------------------------------
# Typed history events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Offered:
    kind: ClassVar[str] = "offered"
    by: Party
    amount: Optional[int]
    currency: Optional[str]

    def payload(self) -> dict:
        return {"amount": self.amount, "currency": self.currency}


@dataclass(frozen=True)
class CounterOffered:
    kind: ClassVar[str] = "counter_offered"
    by: Party
    round: int
    amount: Optional[int]
    currency: Optional[str]
    slot_time: Optional[str] = None
    message: Optional[str] = None

    def payload(self) -> dict:
        return {
            "amount": self.amount,
            "currency": self.currency,
            "slot_time": self.slot_time,
            "message": self.message,
        }


@dataclass(frozen=True)
class Accepted:
    kind: ClassVar[str] = "accepted"
    by: Party
    round: int
    final_amount: Optional[int]

    def payload(self) -> dict:
        return {"final_amount": self.final_amount}


@dataclass(frozen=True)
class Declined:
    kind: ClassVar[str] = "declined"
    by: Party
    round: int

    def payload(self) -> dict:
        return {}


NegotiationEventData = Union[Offered, CounterOffered, Accepted, Declined]


@dataclass(frozen=True)
class ProposalTerms:
    offer_amount: Optional[int] = None
    currency: Optional[str] = None
    slot_time: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "offer_amount": self.offer_amount,
            "currency": self.currency,
            "slot_time": self.slot_time,
            "message": self.message,
        }


@dataclass(frozen=True)
class Transition:
    state: NegotiationState
    event: NegotiationEventData
    booking_status: str
    offer_amount: Optional[int] = None
    final_amount: Optional[int] = None
    creates_proposal: bool = False


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


def validate_not_locked(state: NegotiationState) -> None:
    if state.locked:
        raise NegotiationLocked(f"Negotiation is {state.node.value.lower()}")


def validate_max_rounds(state: NegotiationState) -> None:
    if state.round >= state.max_rounds:
        raise MaxRoundsReached()


def validate_turn(state: NegotiationState, actor: Party) -> None:
    if state.turn != actor:
        raise NotYourTurn(f"Not your turn. Awaiting {state.turn.value}")


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def propose_change(
    state: NegotiationState,
    actor: Party,
    terms: ProposalTerms,
    now: datetime,
    current_currency: Optional[str] = None,
    turn_hours: int = TURN_HOURS,
) -> Transition:
    validate_not_locked(state)
    validate_max_rounds(state)
    validate_turn(state, actor)

    new_round = state.round + 1
    next_state = replace(
        state,
        node=AWAITING_NODE[actor.other],
        round=new_round,
        turn=actor.other,
        deadline_at=now + timedelta(hours=turn_hours),
    )
    event = CounterOffered(
        by=actor,
        round=new_round,
        amount=terms.offer_amount,
        currency=terms.currency or current_currency,
        slot_time=terms.slot_time,
        message=terms.message,
    )
    return Transition(
        state=next_state,
        event=event,
        booking_status="negotiating",
        offer_amount=terms.offer_amount,
        creates_proposal=True,
    )


def accept(state: NegotiationState, actor: Party, current_amount: Optional[int]) -> Transition:
    """Close the negotiation on the live offer; hands the booking to contracting."""
    validate_not_locked(state)
    validate_turn(state, actor)

    next_state = replace(state, node=NegotiationNode.ACCEPTED, turn=None, deadline_at=None)
    return Transition(
        state=next_state,
        event=Accepted(by=actor, round=state.round, final_amount=current_amount),
        booking_status="contracting",
        final_amount=current_amount,
    )


def decline(state: NegotiationState, actor: Party) -> Transition:
    validate_not_locked(state)
    validate_turn(state, actor)

    next_state = replace(state, node=NegotiationNode.DECLINED, turn=None, deadline_at=None)
    return Transition(
        state=next_state,
        event=Declined(by=actor, round=state.round),
        booking_status="cancelled",
    )


def compute_transition(
    state: NegotiationState,
    action: NegotiationAction,
    actor: Party,
    now: datetime,
    terms: Optional[ProposalTerms] = None,
    current_amount: Optional[int] = None,
    current_currency: Optional[str] = None,
    turn_hours: int = TURN_HOURS,
) -> Transition:
    if action is NegotiationAction.PROPOSE_CHANGE:
        return propose_change(
            state, actor, terms or ProposalTerms(), now,
            current_currency=current_currency, turn_hours=turn_hours,
        )
    if action is NegotiationAction.ACCEPT:
        return accept(state, actor, current_amount)
    if action is NegotiationAction.DECLINE:
        return decline(state, actor)
    raise ValueError(f"Unknown negotiation action: {action!r}")
