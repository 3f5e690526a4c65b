import os
from dataclasses import dataclass


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw.strip() else default
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number") from exc


@dataclass(frozen=True)
class Settings:
    rpc_url: str = ""
    contract_address: str = ""
    signer_private_key: str = ""
    tx_timeout_seconds: float = 600.0
    fhe_client_factory: str = ""
    success_ttl_seconds: float = 2.0
    error_ttl_seconds: float = 3.0
    active_window_seconds: int = 86400
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            rpc_url=os.getenv("VOTING_RPC_URL", ""),
            contract_address=os.getenv("VOTING_CONTRACT_ADDRESS", ""),
            signer_private_key=os.getenv("VOTING_SIGNER_PRIVATE_KEY", ""),
            tx_timeout_seconds=_float_env("VOTING_TX_TIMEOUT_SECONDS", 600.0),
            fhe_client_factory=os.getenv("FHE_CLIENT_FACTORY", ""),
            success_ttl_seconds=_float_env("STATUS_SUCCESS_TTL_SECONDS", 2.0),
            error_ttl_seconds=_float_env("STATUS_ERROR_TTL_SECONDS", 3.0),
            active_window_seconds=int(_float_env("ACTIVE_WINDOW_SECONDS", 86400)),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def require_chain(self) -> None:
        if not self.rpc_url:
            raise RuntimeError("VOTING_RPC_URL is required")
        if not self.contract_address:
            raise RuntimeError("VOTING_CONTRACT_ADDRESS is required")
        if not self.signer_private_key:
            raise RuntimeError("VOTING_SIGNER_PRIVATE_KEY is required")

    def require_fhe(self) -> None:
        if not self.fhe_client_factory:
            raise RuntimeError("FHE_CLIENT_FACTORY is required")
