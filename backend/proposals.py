import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from contract_gateway import ContractGateway
from errors import ChainCallFailure

logger = logging.getLogger(__name__)

ACTIVE_WINDOW_SECONDS = 86400
STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"


def coerce_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def proposal_status(timestamp: int, now: float, window: int = ACTIVE_WINDOW_SECONDS) -> str:
    return STATUS_ACTIVE if timestamp > now - window else STATUS_COMPLETED


@dataclass(frozen=True)
class Proposal:
    id: str
    title: str
    description: str
    creator: str
    timestamp: int
    encrypted_votes: str
    public_value1: int = 0
    public_value2: int = 0
    is_verified: bool = False
    decrypted_value: int = 0

    @classmethod
    def from_business_data(cls, business_id: str, data: Mapping[str, Any]) -> "Proposal":
        return cls(
            id=business_id,
            title=str(data.get("name", "")),
            description=str(data.get("description", "")),
            creator=str(data.get("creator", "")),
            timestamp=coerce_int(data.get("timestamp")),
            encrypted_votes=business_id,
            public_value1=coerce_int(data.get("publicValue1")),
            public_value2=coerce_int(data.get("publicValue2")),
            is_verified=bool(data.get("isVerified", False)),
            decrypted_value=coerce_int(data.get("decryptedValue")),
        )

    @property
    def vote_count(self) -> int:
        return self.public_value1

    def status(self, now: float | None = None, window: int = ACTIVE_WINDOW_SECONDS) -> str:
        return proposal_status(self.timestamp, time.time() if now is None else now, window)

    def to_dict(self, now: float | None = None, window: int = ACTIVE_WINDOW_SECONDS) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "creator": self.creator,
            "timestamp": self.timestamp,
            "encryptedVotes": self.encrypted_votes,
            "publicValue1": self.public_value1,
            "publicValue2": self.public_value2,
            "isVerified": self.is_verified,
            "decryptedValue": self.decrypted_value,
            "voteCount": self.vote_count,
            "status": self.status(now, window),
        }


@dataclass(frozen=True)
class VoteStats:
    total_proposals: int = 0
    active_proposals: int = 0
    verified_votes: int = 0
    avg_participation: float = 0.0
    total_votes: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalProposals": self.total_proposals,
            "activeProposals": self.active_proposals,
            "verifiedVotes": self.verified_votes,
            "avgParticipation": self.avg_participation,
            "totalVotes": self.total_votes,
        }


def compute_stats(proposals: Iterable[Proposal], now: float, window: int = ACTIVE_WINDOW_SECONDS) -> VoteStats:
    items = list(proposals)
    total_proposals = len(items)
    total_votes = sum(p.vote_count for p in items)
    return VoteStats(
        total_proposals=total_proposals,
        active_proposals=sum(1 for p in items if p.status(now, window) == STATUS_ACTIVE),
        verified_votes=sum(1 for p in items if p.is_verified),
        avg_participation=total_votes / total_proposals if total_proposals else 0,
        total_votes=total_votes,
    )


class ProposalStore:
    """Proposal collection rebuilt from chain state.

    The collection is only ever replaced as a whole, so readers never observe a
    half-built refresh. A refresh requested while another is running is queued
    and folded into the running one.
    """

    def __init__(
        self,
        gateway: ContractGateway,
        clock: Callable[[], float] = time.time,
        active_window: int = ACTIVE_WINDOW_SECONDS,
    ) -> None:
        self.gateway = gateway
        self.clock = clock
        self.active_window = active_window
        self.proposals: tuple[Proposal, ...] = ()
        self.refreshing = False
        self._refresh_queued = False

    def get(self, proposal_id: str) -> Proposal | None:
        for proposal in self.proposals:
            if proposal.id == proposal_id:
                return proposal
        return None

    def refresh(self) -> bool:
        """Reload every record; returns False when folded into a refresh already in flight."""
        if self.refreshing:
            self._refresh_queued = True
            return False
        self.refreshing = True
        try:
            while True:
                self._refresh_queued = False
                self._load()
                if not self._refresh_queued:
                    break
        finally:
            self.refreshing = False
            self._refresh_queued = False
        return True

    def _load(self) -> None:
        business_ids = self.gateway.list_business_ids()
        loaded: list[Proposal] = []
        for business_id in business_ids:
            try:
                data = self.gateway.business_data(business_id)
                loaded.append(Proposal.from_business_data(business_id, data))
            except (ChainCallFailure, AttributeError, TypeError) as exc:
                logger.warning("Error loading business data for %s: %s", business_id, exc)
        self.proposals = tuple(loaded)
        logger.debug("Loaded %d of %d records", len(loaded), len(business_ids))

    def stats(self, now: float | None = None) -> VoteStats:
        return compute_stats(self.proposals, self.clock() if now is None else now, self.active_window)

    def snapshot(self, now: float | None = None) -> dict[str, Any]:
        current = self.clock() if now is None else now
        proposals = self.proposals
        return {
            "proposals": [p.to_dict(current, self.active_window) for p in proposals],
            "stats": compute_stats(proposals, current, self.active_window).to_dict(),
            "refreshing": self.refreshing,
            "empty": not proposals,
        }
