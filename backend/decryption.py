import logging
from typing import Any, Callable

from contract_gateway import ContractGateway
from errors import DecryptionVerificationFailure, VotingError, error_reason
from fhe_gateway import EncryptionGateway, PendingDecryption
from proposals import Proposal, coerce_int

logger = logging.getLogger(__name__)

ProofSubmitter = Callable[[str, PendingDecryption], Any]


class DecryptionVerifier:
    """Resolves the clear tally behind a record.

    Runs in two explicit phases: the FHE service produces a clear value with a
    decryption proof, then the proof is submitted on-chain through
    ``submit_proof`` (injectable) and the record is reconciled.
    """

    def __init__(
        self,
        contract: ContractGateway,
        encryption: EncryptionGateway,
        reconcile: Callable[[], Any],
    ) -> None:
        self.contract = contract
        self.encryption = encryption
        self.reconcile = reconcile

    def submit_proof(self, business_id: str, pending: PendingDecryption) -> Any:
        tx = self.contract.verify_decryption(
            business_id, pending.abi_encoded_clear_values, pending.decryption_proof
        )
        return self.contract.wait_for_confirmation(tx)

    def request_proof(self, business_id: str, contract_address: str) -> tuple[Any, PendingDecryption]:
        handle = self.contract.encrypted_value(business_id)
        return handle, self.encryption.request_decryption([handle], contract_address)

    def verify(
        self,
        business_id: str,
        contract_address: str,
        submit_proof: ProofSubmitter | None = None,
    ) -> int:
        try:
            data = self.contract.business_data(business_id)
            if data.get("isVerified"):
                return coerce_int(data.get("decryptedValue"))

            handle, pending = self.request_proof(business_id, contract_address)
            clear_value = pending.clear_value(handle)
            (submit_proof or self.submit_proof)(business_id, pending)
        except DecryptionVerificationFailure:
            raise
        except VotingError as exc:
            raise DecryptionVerificationFailure(error_reason(exc)) from exc

        logger.info("Decryption of %s accepted on-chain", business_id)
        self.reconcile()
        return clear_value


class DecryptedValueCache:
    """Per-proposal decrypted values shown next to a selected proposal."""

    def __init__(self) -> None:
        self.values: dict[str, int] = {}

    def get(self, proposal_id: str) -> int | None:
        return self.values.get(proposal_id)

    def toggle(self, proposal_id: str, fetch: Callable[[], int | None]) -> int | None:
        if proposal_id in self.values:
            del self.values[proposal_id]
            return None
        value = fetch()
        if value is not None:
            self.values[proposal_id] = value
        return value

    def display_label(self, proposal: Proposal) -> str:
        if proposal.is_verified:
            return f"{proposal.decrypted_value} votes (Verified)"
        cached = self.values.get(proposal.id)
        if cached is not None:
            return f"{cached} votes (Decrypted)"
        return "FHE Encrypted"
