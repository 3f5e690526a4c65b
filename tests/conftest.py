import pytest

from contract_gateway import ContractGateway
from coordinator import TransactionCoordinator
from fhe_gateway import EncryptionGateway
from notifications import StatusNotifier
from proposals import ProposalStore

USER = "0x1111111111111111111111111111111111111111"
CONTRACT_ADDRESS = "0x00000000000000000000000000000000000000aA"
START = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTx:
    def __init__(self, commit) -> None:
        self.commit = commit
        self.waited = 0

    def wait(self):
        self.waited += 1
        return self.commit()


class FakeVotingContract:
    """In-memory stand-in for both the read-only and the signer contract handle."""

    address = CONTRACT_ADDRESS

    def __init__(self, clock: FakeClock, signer_address: str = USER) -> None:
        self.clock = clock
        self.signer_address = signer_address
        self.records: dict[str, dict] = {}
        self.handles: dict[str, str] = {}
        self.tallies: dict[str, int] = {}
        self.failing_ids: set[str] = set()
        self.list_error: Exception | None = None
        self.write_error: Exception | None = None
        self.wait_error: Exception | None = None
        self.available = True
        self.encrypted_value_calls: list[str] = []
        self.verify_calls: list[tuple] = []
        self.create_calls: list[tuple] = []

    def add_record(self, business_id: str, **fields) -> None:
        record = {
            "name": f"Title {business_id}",
            "description": f"Description {business_id}",
            "timestamp": int(self.clock()),
            "creator": self.signer_address,
            "publicValue1": 0,
            "publicValue2": 0,
            "isVerified": False,
            "decryptedValue": 0,
        }
        record.update(fields)
        self.records[business_id] = record
        self.handles[business_id] = f"0xhandle-{business_id}"

    def get_all_business_ids(self):
        if self.list_error is not None:
            raise self.list_error
        return list(self.records)

    def get_business_data(self, business_id):
        if business_id in self.failing_ids:
            raise RuntimeError("execution reverted")
        return dict(self.records[business_id])

    def get_encrypted_value(self, business_id):
        self.encrypted_value_calls.append(business_id)
        return self.handles[business_id]

    def is_available(self):
        if isinstance(self.available, Exception):
            raise self.available
        return self.available

    def _confirm(self, commit):
        def run():
            if self.wait_error is not None:
                raise self.wait_error
            commit()
            return {"status": 1}

        return FakeTx(run)

    def create_business_data(self, business_id, name, encrypted_data, proof, public_value1, public_value2, description):
        if self.write_error is not None:
            raise self.write_error
        self.create_calls.append((business_id, name, encrypted_data, proof, public_value1, public_value2, description))

        def commit():
            self.add_record(
                business_id,
                name=name,
                description=description,
                publicValue1=public_value1,
                publicValue2=public_value2,
            )
            self.tallies[self.handles[business_id]] = int(str(encrypted_data).split(":")[1])

        return self._confirm(commit)

    def verify_decryption(self, business_id, clear_values_encoded, decryption_proof):
        if self.write_error is not None:
            raise self.write_error
        self.verify_calls.append((business_id, clear_values_encoded, decryption_proof))

        def commit():
            if decryption_proof != "valid-proof":
                raise RuntimeError("execution reverted: invalid decryption proof")
            self.records[business_id]["isVerified"] = True
            self.records[business_id]["decryptedValue"] = int(clear_values_encoded)

        return self._confirm(commit)


class FakeFheService:
    def __init__(self, contract: FakeVotingContract) -> None:
        self.contract = contract
        self.init_error: Exception | None = None
        self.encrypt_error: Exception | None = None
        self.decrypt_error: Exception | None = None
        self.proof = "valid-proof"
        self.init_calls = 0
        self.encrypt_calls: list[tuple] = []
        self.decrypt_calls: list[tuple] = []

    def initialize(self):
        self.init_calls += 1
        if self.init_error is not None:
            raise self.init_error

    def encrypt(self, contract_address, user_address, value):
        self.encrypt_calls.append((contract_address, user_address, value))
        if self.encrypt_error is not None:
            raise self.encrypt_error
        return {"encryptedData": f"enc:{value}:{len(self.encrypt_calls)}", "proof": f"input-proof-{len(self.encrypt_calls)}"}

    def public_decrypt(self, handles, contract_address):
        self.decrypt_calls.append((tuple(handles), contract_address))
        if self.decrypt_error is not None:
            raise self.decrypt_error
        clear_values = {h: self.contract.tallies[h] for h in handles}
        return {
            "clearValues": clear_values,
            "abiEncodedClearValues": str(clear_values[handles[0]]),
            "decryptionProof": self.proof,
        }


class ManualScheduler:
    """Collects expiry callbacks so tests decide when timers fire."""

    class Handle:
        def __init__(self, delay, callback) -> None:
            self.delay = delay
            self.callback = callback
            self.cancelled = False

        def cancel(self):
            self.cancelled = True

    def __init__(self) -> None:
        self.handles: list[ManualScheduler.Handle] = []

    def __call__(self, delay, callback):
        handle = ManualScheduler.Handle(delay, callback)
        self.handles.append(handle)
        return handle

    def fire(self, handle, include_cancelled: bool = False):
        if handle.cancelled and not include_cancelled:
            return
        handle.callback()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def contract(clock):
    return FakeVotingContract(clock)


@pytest.fixture
def fhe(contract):
    return FakeFheService(contract)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def gateway(contract):
    return ContractGateway(contract, contract)


@pytest.fixture
def store(gateway, clock):
    return ProposalStore(gateway, clock=clock)


@pytest.fixture
def notifier(scheduler):
    return StatusNotifier(success_ttl=2, error_ttl=3, scheduler=scheduler)


@pytest.fixture
def make_coordinator(gateway, fhe, store, notifier, clock):
    def _make(user_address=USER, initialize=True):
        coordinator = TransactionCoordinator(
            gateway, EncryptionGateway(fhe), store, notifier, user_address=user_address, clock=clock
        )
        if initialize:
            coordinator.initialize_encryption()
        return coordinator

    return _make


@pytest.fixture
def coordinator(make_coordinator):
    return make_coordinator()
