import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol, Sequence

from errors import (
    DecryptionVerificationFailure,
    EncryptionFailure,
    InitializationFailure,
    UserRejection,
    error_reason,
    is_user_rejection,
)

logger = logging.getLogger(__name__)


class FheService(Protocol):
    def initialize(self) -> None: ...

    def encrypt(self, contract_address: str, user_address: str, value: int) -> Any: ...

    def public_decrypt(self, handles: Sequence[Any], contract_address: str) -> Any: ...


def handle_key(handle: Any) -> str:
    if isinstance(handle, (bytes, bytearray)):
        return "0x" + bytes(handle).hex()
    return str(handle).lower()


def _pick(result: Any, *names: str) -> Any:
    for name in names:
        if isinstance(result, Mapping) and name in result:
            return result[name]
        if hasattr(result, name):
            return getattr(result, name)
    raise KeyError(names[0])


@dataclass(frozen=True)
class EncryptedInput:
    encrypted_data: Any
    proof: Any


@dataclass(frozen=True)
class PendingDecryption:
    """Off-chain decryption result waiting to be accepted on-chain."""

    handles: tuple[str, ...]
    clear_values: dict[str, int]
    abi_encoded_clear_values: Any
    decryption_proof: Any = field(repr=False)

    def clear_value(self, handle: Any) -> int:
        key = handle_key(handle)
        if key not in self.clear_values:
            raise DecryptionVerificationFailure(f"No clear value returned for handle {key}")
        return self.clear_values[key]


class EncryptionGateway:
    def __init__(self, service: FheService) -> None:
        self.service = service
        self.is_initialized = False
        self.initializing = False

    def initialize(self) -> bool:
        """Initialize the FHE service once; returns False when a run is already in flight."""
        if self.is_initialized:
            return True
        if self.initializing:
            return False
        self.initializing = True
        try:
            self.service.initialize()
        except Exception as exc:
            logger.error("FHE initialization failed: %s", exc)
            raise InitializationFailure(error_reason(exc)) from exc
        finally:
            self.initializing = False
        self.is_initialized = True
        return True

    def _require_initialized(self) -> None:
        if not self.is_initialized:
            raise InitializationFailure("FHE service is not initialized")

    def encrypt(self, contract_address: str, user_address: str, value: int) -> EncryptedInput:
        self._require_initialized()
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise EncryptionFailure(f"Plaintext must be a non-negative integer, got {value!r}")
        try:
            result = self.service.encrypt(contract_address, user_address, value)
            return EncryptedInput(
                encrypted_data=_pick(result, "encryptedData", "encrypted_data", "handle"),
                proof=_pick(result, "proof", "inputProof", "input_proof"),
            )
        except Exception as exc:
            if is_user_rejection(exc):
                raise UserRejection(error_reason(exc)) from exc
            raise EncryptionFailure(error_reason(exc)) from exc

    def request_decryption(self, handles: Sequence[Any], contract_address: str) -> PendingDecryption:
        self._require_initialized()
        try:
            result = self.service.public_decrypt(list(handles), contract_address)
            raw_values = _pick(result, "clearValues", "clear_values")
            clear_values = {handle_key(h): int(v) for h, v in raw_values.items()}
            return PendingDecryption(
                handles=tuple(handle_key(h) for h in handles),
                clear_values=clear_values,
                abi_encoded_clear_values=_pick(result, "abiEncodedClearValues", "abi_encoded_clear_values"),
                decryption_proof=_pick(result, "decryptionProof", "decryption_proof"),
            )
        except DecryptionVerificationFailure:
            raise
        except Exception as exc:
            raise DecryptionVerificationFailure(error_reason(exc)) from exc


def load_fhe_service(factory_path: str) -> FheService:
    module_name, _, attr = factory_path.partition(":")
    if not module_name or not attr:
        raise RuntimeError("FHE_CLIENT_FACTORY must look like 'module:callable'")
    factory: Callable[[], FheService] = getattr(importlib.import_module(module_name), attr)
    return factory()
