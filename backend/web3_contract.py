from typing import Any

from web3 import Web3

from config import Settings
from errors import ChainCallFailure

BUSINESS_DATA_FIELDS = (
    "name",
    "publicValue1",
    "publicValue2",
    "description",
    "creator",
    "timestamp",
    "isVerified",
    "decryptedValue",
)

VOTING_ABI = [
    {
        "inputs": [],
        "name": "getAllBusinessIds",
        "outputs": [{"internalType": "string[]", "name": "", "type": "string[]"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "string", "name": "businessId", "type": "string"}],
        "name": "getBusinessData",
        "outputs": [
            {"internalType": "string", "name": "name", "type": "string"},
            {"internalType": "uint256", "name": "publicValue1", "type": "uint256"},
            {"internalType": "uint256", "name": "publicValue2", "type": "uint256"},
            {"internalType": "string", "name": "description", "type": "string"},
            {"internalType": "address", "name": "creator", "type": "address"},
            {"internalType": "uint256", "name": "timestamp", "type": "uint256"},
            {"internalType": "bool", "name": "isVerified", "type": "bool"},
            {"internalType": "uint32", "name": "decryptedValue", "type": "uint32"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "string", "name": "businessId", "type": "string"}],
        "name": "getEncryptedValue",
        "outputs": [{"internalType": "euint32", "name": "", "type": "bytes32"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "isAvailable",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "string", "name": "businessId", "type": "string"},
            {"internalType": "string", "name": "name", "type": "string"},
            {"internalType": "externalEuint32", "name": "encryptedValue", "type": "bytes32"},
            {"internalType": "bytes", "name": "inputProof", "type": "bytes"},
            {"internalType": "uint256", "name": "publicValue1", "type": "uint256"},
            {"internalType": "uint256", "name": "publicValue2", "type": "uint256"},
            {"internalType": "string", "name": "description", "type": "string"},
        ],
        "name": "createBusinessData",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "string", "name": "businessId", "type": "string"},
            {"internalType": "bytes", "name": "abiEncodedClearValue", "type": "bytes"},
            {"internalType": "bytes", "name": "decryptionProof", "type": "bytes"},
        ],
        "name": "verifyDecryption",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


class PendingTransaction:
    def __init__(self, w3: Web3, tx_hash: Any, timeout: float) -> None:
        self.w3 = w3
        self.tx_hash = tx_hash
        self.timeout = timeout

    def wait(self) -> Any:
        receipt = self.w3.eth.wait_for_transaction_receipt(self.tx_hash, timeout=self.timeout)
        if receipt["status"] != 1:
            raise ChainCallFailure(f"Transaction reverted: {self.w3.to_hex(self.tx_hash)}")
        return receipt


class Web3VotingContract:
    def __init__(self, w3: Web3, address: str, account: Any = None, tx_timeout: float = 600.0) -> None:
        self.w3 = w3
        self.address = Web3.to_checksum_address(address)
        self.account = account
        self.tx_timeout = tx_timeout
        self.contract = w3.eth.contract(address=self.address, abi=VOTING_ABI)

    def get_all_business_ids(self) -> list[str]:
        return list(self.contract.functions.getAllBusinessIds().call())

    def get_business_data(self, business_id: str) -> dict[str, Any]:
        values = self.contract.functions.getBusinessData(business_id).call()
        return dict(zip(BUSINESS_DATA_FIELDS, values))

    def get_encrypted_value(self, business_id: str) -> Any:
        return self.contract.functions.getEncryptedValue(business_id).call()

    def is_available(self) -> bool:
        return bool(self.contract.functions.isAvailable().call())

    def _send(self, call: Any) -> PendingTransaction:
        if self.account is None:
            raise RuntimeError("Contract handle has no signer account")
        tx = call.build_transaction(
            {
                "from": self.account.address,
                "nonce": self.w3.eth.get_transaction_count(self.account.address),
            }
        )
        signed_tx = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        return PendingTransaction(self.w3, tx_hash, self.tx_timeout)

    def create_business_data(
        self,
        business_id: str,
        name: str,
        encrypted_data: Any,
        proof: Any,
        public_value1: int,
        public_value2: int,
        description: str,
    ) -> PendingTransaction:
        return self._send(
            self.contract.functions.createBusinessData(
                business_id, name, encrypted_data, proof, public_value1, public_value2, description
            )
        )

    def verify_decryption(self, business_id: str, clear_values_encoded: Any, decryption_proof: Any) -> PendingTransaction:
        return self._send(
            self.contract.functions.verifyDecryption(business_id, clear_values_encoded, decryption_proof)
        )


def build_contract_handles(settings: Settings) -> tuple[Web3VotingContract, Web3VotingContract, str]:
    settings.require_chain()
    w3 = Web3(Web3.HTTPProvider(settings.rpc_url))
    account = w3.eth.account.from_key(settings.signer_private_key)
    read_only = Web3VotingContract(w3, settings.contract_address, tx_timeout=settings.tx_timeout_seconds)
    signer = Web3VotingContract(
        w3, settings.contract_address, account=account, tx_timeout=settings.tx_timeout_seconds
    )
    return read_only, signer, account.address
