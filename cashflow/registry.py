"""
Participant registry.

Participants live in a fixed, indexed sequence for the whole run. Index 0 is
always the Treasurer: once registration is sealed its channel set is the
union of everyone's, so it shares at least one channel with every other
participant and can route any debt that has no direct channel.

Balances are signed integers, positive when the group owes the participant.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from cashflow.config import LOG_LEVELS
from cashflow.errors import ConfigurationError, InputError, InvariantViolation


TREASURER_INDEX = 0
MIN_PARTICIPANTS = 2

logger = logging.getLogger("cashflow.registry")


@dataclass
class Participant:
    """One member of the settlement group."""
    name: str
    channels: Set[str] = field(default_factory=set)
    balance: int = 0

    def add_channel(self, channel: str) -> None:
        self.channels.add(channel)

    def adjust_balance(self, amount: int) -> None:
        self.balance += amount

    @property
    def settled(self) -> bool:
        return self.balance == 0


class ParticipantRegistry:
    """
    Owns every Participant of a run.

    Lifecycle:
    1. register() each participant; the first one becomes the Treasurer
    2. seal() unions all channels into the Treasurer and freezes membership
    3. netting writes balances once, the planner mutates them by index
    """

    def __init__(self):
        self._participants: List[Participant] = []
        self._index: Dict[str, int] = {}
        self._sealed = False
        self._netted = False

    def _log(self, msg: str, level: str = 'debug') -> None:
        logger.log(LOG_LEVELS[level], f"cashflow: registry: {msg}")

    @classmethod
    def from_entries(cls, entries: Iterable[Tuple[str, Iterable[str]]]) -> "ParticipantRegistry":
        """Build and seal a registry from (name, channels) pairs, Treasurer first."""
        registry = cls()
        for name, channels in entries:
            registry.register(name, channels)
        registry.seal()
        return registry

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def register(self, name: str, channels: Iterable[str]) -> int:
        """Add a participant and return its index."""
        if self._sealed:
            raise ConfigurationError(f"cannot register {name!r}: registry is sealed")
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError("participant name must be a non-empty string")
        name = name.strip()
        if name in self._index:
            raise ConfigurationError(f"duplicate participant name {name!r}")

        if isinstance(channels, str):
            raise ConfigurationError(
                f"channels for {name!r} must be a collection of identifiers, not a string"
            )
        channel_set = set()
        for channel in channels:
            if not isinstance(channel, str) or not channel.strip():
                raise ConfigurationError(f"participant {name!r} has an empty channel identifier")
            channel_set.add(channel.strip())

        index = len(self._participants)
        # Only the Treasurer may start without channels; seal() gives it everyone's
        if index != TREASURER_INDEX and not channel_set:
            raise ConfigurationError(f"participant {name!r} must declare at least one channel")

        self._participants.append(Participant(name=name, channels=channel_set))
        self._index[name] = index
        self._log(f"registered #{index} {name} channels={sorted(channel_set)}")
        return index

    def seal(self) -> None:
        """Finish registration and give the Treasurer every channel in use."""
        if self._sealed:
            return
        if len(self._participants) < MIN_PARTICIPANTS:
            raise ConfigurationError(
                f"at least {MIN_PARTICIPANTS} participants required, got {len(self._participants)}"
            )
        treasurer = self._participants[TREASURER_INDEX]
        for participant in self._participants[TREASURER_INDEX + 1:]:
            for channel in participant.channels:
                treasurer.add_channel(channel)
        self._sealed = True
        self._log(f"sealed {len(self)} participants, treasurer {treasurer.name} "
                  f"supports {len(treasurer.channels)} channels", level='info')

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def netted(self) -> bool:
        return self._netted

    def mark_netted(self) -> None:
        """Record that net balances were written; allowed once per run."""
        if not self._sealed:
            raise InvariantViolation("balances netted before registration was sealed")
        if self._netted:
            raise InvariantViolation("balances already netted for this registry")
        self._netted = True

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def __len__(self) -> int:
        return len(self._participants)

    def __iter__(self) -> Iterator[Participant]:
        return iter(self._participants)

    def __getitem__(self, index: int) -> Participant:
        return self._participants[index]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip() in self._index

    @property
    def treasurer(self) -> Participant:
        return self._participants[TREASURER_INDEX]

    @property
    def names(self) -> List[str]:
        return [p.name for p in self._participants]

    def index_of(self, name: str) -> int:
        """Resolve a participant name, rejecting unknown ones as bad input."""
        try:
            return self._index[name.strip()]
        except (KeyError, AttributeError):
            raise InputError(f"unknown participant {name!r}") from None

    def name_of(self, index: int) -> str:
        return self._participants[index].name

    # =========================================================================
    # CHANNELS AND BALANCES
    # =========================================================================

    def shared_channels(self, a: int, b: int) -> List[str]:
        """Channels both participants support, smallest identifier first."""
        return sorted(self._participants[a].channels & self._participants[b].channels)

    def first_channel(self, index: int) -> Optional[str]:
        channels = self._participants[index].channels
        return min(channels) if channels else None

    def balances(self) -> List[int]:
        return [p.balance for p in self._participants]

    def total_balance(self) -> int:
        return sum(p.balance for p in self._participants)

    def unsettled(self) -> List[int]:
        return [i for i, p in enumerate(self._participants) if p.balance != 0]

    def all_settled(self) -> bool:
        return all(p.balance == 0 for p in self._participants)

    def treasurer_is_universal(self) -> bool:
        treasurer_channels = self.treasurer.channels
        return all(p.channels <= treasurer_channels for p in self._participants)

    def snapshot(self) -> List[Dict[str, object]]:
        """Plain-data view of every participant, in index order."""
        return [
            {"index": i, "name": p.name, "balance": p.balance, "channels": sorted(p.channels)}
            for i, p in enumerate(self._participants)
        ]

