import pytest

from decryption import DecryptedValueCache, DecryptionVerifier
from errors import DecryptionVerificationFailure
from fhe_gateway import EncryptionGateway

from conftest import CONTRACT_ADDRESS


@pytest.fixture
def voted(coordinator, contract):
    """A proposal whose encrypted tally is 7 and not yet verified."""
    run = coordinator.create_proposal("Merger", "Approve the merger", "7")
    return run.business_id


def test_verified_record_short_circuits(coordinator, contract, fhe):
    contract.add_record("proposal-1", isVerified=True, decryptedValue=12)

    assert coordinator.verify_decryption("proposal-1") == 12
    assert contract.encrypted_value_calls == []
    assert fhe.decrypt_calls == []
    assert contract.verify_calls == []


def test_round_trip_verifies_on_chain(coordinator, contract, fhe, voted):
    assert coordinator.verify_decryption(voted) == 7

    assert fhe.decrypt_calls == [((f"0xhandle-{voted}",), CONTRACT_ADDRESS)]
    assert contract.verify_calls == [(voted, "7", "valid-proof")]
    refreshed = coordinator.store.get(voted)
    assert refreshed.is_verified is True
    assert refreshed.decrypted_value == 7

    assert coordinator.verify_decryption(voted) == 7
    assert len(fhe.decrypt_calls) == 1


def test_rejected_proof_is_a_decryption_failure(coordinator, fhe, notifier, voted):
    fhe.proof = "forged"

    assert coordinator.verify_decryption(voted) is None
    assert notifier.current.status == "error"
    assert notifier.current.message == "Decryption failed: execution reverted: invalid decryption proof"
    assert coordinator.store.get(voted).is_verified is False

    fhe.proof = "valid-proof"
    assert coordinator.verify_decryption(voted) == 7


def test_off_chain_failure_is_a_decryption_failure(coordinator, contract, fhe, notifier, voted):
    fhe.decrypt_error = RuntimeError("relayer 503")

    assert coordinator.verify_decryption(voted) is None
    assert notifier.current.message == "Decryption failed: relayer 503"
    assert contract.verify_calls == []


def test_verifier_accepts_injected_proof_submitter(gateway, fhe, contract, voted):
    encryption = EncryptionGateway(fhe)
    encryption.initialize()
    reconciled = []
    verifier = DecryptionVerifier(gateway, encryption, lambda: reconciled.append(True))
    submitted = []

    value = verifier.verify(voted, CONTRACT_ADDRESS, submit_proof=lambda bid, pending: submitted.append((bid, pending)))

    assert value == 7
    assert submitted[0][0] == voted
    assert submitted[0][1].decryption_proof == "valid-proof"
    assert contract.verify_calls == []
    assert reconciled == [True]


def test_verifier_raises_on_handle_fetch_failure(gateway, fhe):
    encryption = EncryptionGateway(fhe)
    encryption.initialize()
    verifier = DecryptionVerifier(gateway, encryption, lambda: None)

    with pytest.raises(DecryptionVerificationFailure):
        verifier.verify("missing", CONTRACT_ADDRESS)


def test_toggle_clears_cached_value_without_network(coordinator, fhe, contract, voted):
    fhe.proof = "not-accepted-yet"
    coordinator.decrypted.values[voted] = 7

    assert coordinator.toggle_decrypted(voted) is None
    assert coordinator.decrypted.get(voted) is None
    assert fhe.decrypt_calls == []
    assert contract.encrypted_value_calls == []


def test_toggle_fetches_then_clears(coordinator, fhe, voted):
    assert coordinator.toggle_decrypted(voted) == 7
    assert coordinator.decrypted.get(voted) == 7
    assert coordinator.toggle_decrypted(voted) is None
    assert len(fhe.decrypt_calls) == 1


def test_display_labels(coordinator, contract, voted):
    cache = DecryptedValueCache()
    proposal = coordinator.store.get(voted)
    assert cache.display_label(proposal) == "FHE Encrypted"

    cache.values[voted] = 7
    assert cache.display_label(proposal) == "7 votes (Decrypted)"

    contract.add_record("proposal-2", isVerified=True, decryptedValue=3)
    coordinator.refresh()
    assert cache.display_label(coordinator.store.get("proposal-2")) == "3 votes (Verified)"


def test_missing_clear_value_fails_before_submitting_proof(coordinator, contract, fhe, notifier, voted):
    def decrypt_other_handle(handles, contract_address):
        return {"clearValues": {"0xsomething-else": 1}, "abiEncodedClearValues": "1", "decryptionProof": "valid-proof"}

    fhe.public_decrypt = decrypt_other_handle

    assert coordinator.verify_decryption(voted) is None
    assert notifier.current.message.startswith("Decryption failed: No clear value returned")
    assert contract.verify_calls == []
    assert contract.records[voted]["isVerified"] is False
