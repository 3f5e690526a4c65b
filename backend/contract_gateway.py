from typing import Any, Mapping, Protocol

from errors import (
    ChainCallFailure,
    UserRejection,
    WalletNotConnected,
    error_reason,
    is_user_rejection,
)


class TxHandle(Protocol):
    def wait(self) -> Any: ...


class ReadOnlyContract(Protocol):
    address: str

    def get_all_business_ids(self) -> list[str]: ...

    def get_business_data(self, business_id: str) -> Mapping[str, Any]: ...

    def get_encrypted_value(self, business_id: str) -> Any: ...

    def is_available(self) -> bool: ...


class SignerContract(Protocol):
    def create_business_data(
        self,
        business_id: str,
        name: str,
        encrypted_data: Any,
        proof: Any,
        public_value1: int,
        public_value2: int,
        description: str,
    ) -> TxHandle: ...

    def verify_decryption(self, business_id: str, clear_values_encoded: Any, decryption_proof: Any) -> TxHandle: ...


def _write_failure(exc: Exception) -> Exception:
    if is_user_rejection(exc):
        return UserRejection(error_reason(exc))
    if isinstance(exc, ChainCallFailure):
        return exc
    return ChainCallFailure(error_reason(exc))


class ContractGateway:
    def __init__(self, read_only: ReadOnlyContract, signer: SignerContract | None = None) -> None:
        self.read_only = read_only
        self.signer = signer

    @property
    def address(self) -> str:
        return self.read_only.address

    def _signer_or_error(self) -> SignerContract:
        if self.signer is None:
            raise WalletNotConnected("Failed to get contract with signer")
        return self.signer

    def list_business_ids(self) -> list[str]:
        try:
            return [str(business_id) for business_id in self.read_only.get_all_business_ids()]
        except Exception as exc:
            raise ChainCallFailure(error_reason(exc)) from exc

    def business_data(self, business_id: str) -> Mapping[str, Any]:
        try:
            return self.read_only.get_business_data(business_id)
        except Exception as exc:
            raise ChainCallFailure(error_reason(exc)) from exc

    def encrypted_value(self, business_id: str) -> Any:
        try:
            return self.read_only.get_encrypted_value(business_id)
        except Exception as exc:
            raise ChainCallFailure(error_reason(exc)) from exc

    def is_available(self) -> bool:
        try:
            return bool(self.read_only.is_available())
        except Exception as exc:
            raise ChainCallFailure(error_reason(exc)) from exc

    def create_business_data(
        self,
        business_id: str,
        name: str,
        encrypted_data: Any,
        proof: Any,
        public_value1: int,
        public_value2: int,
        description: str,
    ) -> TxHandle:
        signer = self._signer_or_error()
        try:
            return signer.create_business_data(
                business_id, name, encrypted_data, proof, public_value1, public_value2, description
            )
        except Exception as exc:
            raise _write_failure(exc) from exc

    def verify_decryption(self, business_id: str, clear_values_encoded: Any, decryption_proof: Any) -> TxHandle:
        signer = self._signer_or_error()
        try:
            return signer.verify_decryption(business_id, clear_values_encoded, decryption_proof)
        except Exception as exc:
            raise _write_failure(exc) from exc

    def wait_for_confirmation(self, tx: TxHandle) -> Any:
        try:
            return tx.wait()
        except Exception as exc:
            raise _write_failure(exc) from exc
