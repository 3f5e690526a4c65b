import enum
import logging
import math
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from contract_gateway import ContractGateway, TxHandle
from decryption import DecryptedValueCache, DecryptionVerifier
from errors import (
    ActionInProgress,
    ChainCallFailure,
    InitializationFailure,
    error_reason,
    is_user_rejection,
)
from fhe_gateway import EncryptedInput, EncryptionGateway
from notifications import StatusNotifier
from proposals import ProposalStore

logger = logging.getLogger(__name__)

REJECTED_MESSAGE = "Transaction rejected by user"
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class ActionState(str, enum.Enum):
    IDLE = "idle"
    ENCRYPTING = "encrypting"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    RECONCILING = "reconciling"
    SUCCESS = "success"
    FAILED = "failed"


TERMINAL_STATES = (ActionState.SUCCESS, ActionState.FAILED)


@dataclass
class ActionRun:
    kind: str
    business_id: str
    state: ActionState = ActionState.IDLE
    history: list[ActionState] = field(default_factory=lambda: [ActionState.IDLE])
    message: str = ""
    user_rejected: bool = False
    receipt: Any = None

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, state: ActionState) -> None:
        if self.done:
            raise RuntimeError(f"{self.kind} {self.business_id} already finished as {self.state.value}")
        self.state = state
        self.history.append(state)
        logger.debug("%s %s -> %s", self.kind, self.business_id, state.value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "businessId": self.business_id,
            "state": self.state.value,
            "history": [s.value for s in self.history],
            "message": self.message,
            "userRejected": self.user_rejected,
        }


def parse_int_prefix(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if math.isfinite(raw) else None
    match = _LEADING_INT.match(str(raw or ""))
    if not match:
        return None
    try:
        return int(match.group(1))
    except ValueError:
        return None


def parse_proposal_weight(raw: Any) -> int:
    return parse_int_prefix(raw) or 1


def parse_vote_value(raw: Any) -> int:
    value = parse_int_prefix(raw)
    return value if value is not None and value >= 1 else 1


class TransactionCoordinator:
    def __init__(
        self,
        contract: ContractGateway,
        encryption: EncryptionGateway,
        store: ProposalStore,
        notifier: StatusNotifier,
        user_address: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.contract = contract
        self.encryption = encryption
        self.store = store
        self.notifier = notifier
        self.user_address = user_address
        self.clock = clock
        self.contract_address = ""
        self.in_flight: set[str] = set()
        self._in_flight_lock = threading.Lock()
        self.last_run: ActionRun | None = None
        self.decrypted = DecryptedValueCache()
        self.verifier = DecryptionVerifier(contract, encryption, self._reconcile)

    @property
    def is_connected(self) -> bool:
        return bool(self.user_address)

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _begin(self, kind: str) -> None:
        with self._in_flight_lock:
            if kind in self.in_flight:
                raise ActionInProgress(f"{kind} already in progress")
            self.in_flight.add(kind)

    def _end(self, kind: str) -> None:
        with self._in_flight_lock:
            self.in_flight.discard(kind)

    def _ensure_contract_address(self) -> str:
        if not self.contract_address:
            self.contract_address = self.contract.address
        return self.contract_address

    def initialize_encryption(self) -> bool:
        if not self.is_connected:
            return False
        try:
            self.encryption.initialize()
        except InitializationFailure:
            self.notifier.error("FHEVM initialization failed")
            return False
        return self.encryption.is_initialized

    def load(self) -> bool:
        if not self.is_connected:
            return False
        loaded = self.refresh()
        try:
            self._ensure_contract_address()
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to resolve contract address: %s", exc)
        return loaded

    def refresh(self) -> bool:
        if not self.is_connected:
            return False
        try:
            return self.store.refresh()
        except ChainCallFailure as exc:
            logger.warning("Failed to load data: %s", exc)
            self.notifier.error("Failed to load data")
            return False

    def _reconcile(self) -> None:
        try:
            self.store.refresh()
        except ChainCallFailure as exc:
            logger.warning("Reconcile after confirmation failed: %s", exc)

    def _submit(
        self,
        run: ActionRun,
        value: int,
        send: Callable[[EncryptedInput], TxHandle],
        confirming_message: str,
    ) -> None:
        run.advance(ActionState.ENCRYPTING)
        encrypted = self.encryption.encrypt(self._ensure_contract_address(), self.user_address or "", value)
        run.advance(ActionState.SUBMITTING)
        tx = send(encrypted)
        self.notifier.pending(confirming_message)
        run.advance(ActionState.CONFIRMING)
        run.receipt = self.contract.wait_for_confirmation(tx)
        run.advance(ActionState.RECONCILING)
        self._reconcile()

    def _finish(self, run: ActionRun, success_message: str) -> ActionRun:
        run.advance(ActionState.SUCCESS)
        run.message = success_message
        self.notifier.success(success_message)
        logger.info("%s %s confirmed", run.kind, run.business_id)
        return run

    def _fail(self, run: ActionRun, exc: Exception, prefix: str) -> ActionRun:
        run.user_rejected = is_user_rejection(exc)
        run.message = REJECTED_MESSAGE if run.user_rejected else prefix + error_reason(exc)
        run.state = ActionState.FAILED
        run.history.append(ActionState.FAILED)
        self.notifier.error(run.message)
        logger.warning("%s %s failed: %s", run.kind, run.business_id, exc)
        return run

    def create_proposal(self, title: str, description: str, vote_weight: Any = None) -> ActionRun:
        business_id = f"proposal-{self._now_ms()}"
        run = ActionRun("create_proposal", business_id)
        if not self.is_connected:
            run.message = "Please connect wallet first"
            run.state = ActionState.FAILED
            run.history.append(ActionState.FAILED)
            self.notifier.error(run.message)
            return run
        if not (title or "").strip() or not (description or "").strip():
            raise ValueError("title and description are required")

        weight = parse_proposal_weight(vote_weight)
        self._begin("create_proposal")
        self.last_run = run
        self.notifier.pending("Creating proposal with Zama FHE...")
        try:
            self._submit(
                run,
                weight,
                lambda encrypted: self.contract.create_business_data(
                    business_id, title, encrypted.encrypted_data, encrypted.proof, 0, 0, description
                ),
                "Waiting for transaction confirmation...",
            )
        except Exception as exc:  # noqa: BLE001
            return self._fail(run, exc, "Submission failed: ")
        finally:
            self._end("create_proposal")
        return self._finish(run, "Proposal created successfully!")

    def cast_vote(self, proposal_id: str, vote_input: Any = None) -> ActionRun | None:
        if not self.is_connected:
            return None
        proposal = self.store.get(proposal_id)
        if proposal is None:
            raise LookupError(f"Unknown proposal {proposal_id}")

        vote_value = parse_vote_value(vote_input)
        business_id = f"vote-{proposal.id}-{self._now_ms()}"
        run = ActionRun("cast_vote", business_id)
        self._begin("cast_vote")
        self.last_run = run
        self.notifier.pending("Casting encrypted vote...")
        try:
            self._submit(
                run,
                vote_value,
                lambda encrypted: self.contract.create_business_data(
                    business_id,
                    f"Vote for {proposal.title}",
                    encrypted.encrypted_data,
                    encrypted.proof,
                    vote_value,
                    0,
                    f"Vote cast by {self.user_address}",
                ),
                "Recording vote on-chain...",
            )
        except Exception as exc:  # noqa: BLE001
            return self._fail(run, exc, "Vote failed: ")
        finally:
            self._end("cast_vote")
        return self._finish(run, "Vote cast successfully!")

    def verify_decryption(self, proposal_id: str) -> int | None:
        if not self.is_connected:
            return None
        self._begin("decrypt")
        try:
            return self.verifier.verify(proposal_id, self._ensure_contract_address())
        except Exception as exc:  # noqa: BLE001
            logger.warning("Decryption of %s failed: %s", proposal_id, exc)
            self.notifier.error("Decryption failed: " + error_reason(exc))
            return None
        finally:
            self._end("decrypt")

    def toggle_decrypted(self, proposal_id: str) -> int | None:
        return self.decrypted.toggle(proposal_id, lambda: self.verify_decryption(proposal_id))

    def check_availability(self) -> bool:
        try:
            available = self.contract.is_available()
        except ChainCallFailure as exc:
            logger.warning("Availability check failed: %s", exc)
            available = False
        if available:
            self.notifier.success("Contract is available and responding!")
        else:
            self.notifier.error("Availability check failed")
        return available
