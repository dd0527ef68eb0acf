"""Web3 ledger client — signed transactions against the EVM contracts.

Two contracts are involved:
    VaccinationRecords  recordVaccination(...) and getContractStats()
    Reward token        rewardParent(address,string) and getStats()

Digest anchoring needs no contract: like the constitution anchor, it is a
0-value self-send with the digest in the data field.

Every state-changing call is preflighted with ``.call()`` so a contract
revert surfaces as LedgerRejected before anything is signed. Transport
failures (RPC unreachable, receipt wait timed out) surface as
LedgerUnavailable.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

import requests
from eth_account import Account
from web3 import HTTPProvider, Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from vaxledger.config import Settings
from vaxledger.errors import (
    AlreadyRewarded,
    ConfigurationError,
    LedgerRejected,
    LedgerUnavailable,
)
from vaxledger.ledger.client import LedgerStats, LedgerTx

logger = logging.getLogger(__name__)

ALREADY_REWARDED_REASON = "Already rewarded for this child"

RECORDS_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "recordVaccination",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "childId", "type": "string"},
            {"name": "vaccineName", "type": "string"},
            {"name": "doseNumber", "type": "uint256"},
            {"name": "timestamp", "type": "uint256"},
            {"name": "hospitalId", "type": "string"},
            {"name": "batchNumber", "type": "string"},
            {"name": "expiryDate", "type": "uint256"},
            {"name": "ipfsHash", "type": "string"},
        ],
        "outputs": [{"name": "recordHash", "type": "bytes32"}],
    },
    {
        "type": "function",
        "name": "getContractStats",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {"name": "totalRecords", "type": "uint256"},
            {"name": "contractBalance", "type": "uint256"},
        ],
    },
]

REWARD_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "rewardParent",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "parent", "type": "address"},
            {"name": "childId", "type": "string"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "getStats",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {"name": "supply", "type": "uint256"},
            {"name": "rewards", "type": "uint256"},
            {"name": "parents", "type": "uint256"},
        ],
    },
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]


class Web3LedgerClient:
    """LedgerClient backed by an EVM JSON-RPC endpoint.

    Usage:
        client = Web3LedgerClient.from_settings(settings)
        if client is not None:
            tx = client.anchor_digest("ab12...")
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        chain_id: int,
        records_contract_address: Optional[str] = None,
        reward_contract_address: Optional[str] = None,
        timeout_seconds: float = 10.0,
        explorer_url: str = "https://explorer.vanarchain.com/tx",
        digest_gas: int = 30_000,
    ) -> None:
        self._w3 = Web3(HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds}))
        self._account = Account.from_key(private_key)
        self._chain_id = chain_id
        self._timeout = timeout_seconds
        self._explorer_url = explorer_url.rstrip("/")
        self._digest_gas = digest_gas
        self._records = (
            self._w3.eth.contract(
                address=Web3.to_checksum_address(records_contract_address),
                abi=RECORDS_ABI,
            )
            if records_contract_address else None
        )
        self._reward = (
            self._w3.eth.contract(
                address=Web3.to_checksum_address(reward_contract_address),
                abi=REWARD_ABI,
            )
            if reward_contract_address else None
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional[Web3LedgerClient]:
        """Build a client, or None when no RPC endpoint/key is configured."""
        if not settings.ledger_configured:
            return None
        try:
            return cls(
                rpc_url=settings.ledger_rpc_url,
                private_key=settings.ledger_private_key,
                chain_id=settings.ledger_chain_id,
                records_contract_address=settings.records_contract_address,
                reward_contract_address=settings.reward_contract_address,
                timeout_seconds=settings.ledger_timeout_seconds,
                explorer_url=settings.ledger_explorer_url,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid ledger configuration: {e}")

    @property
    def address(self) -> str:
        return self._account.address

    def explorer_link(self, tx_hash: str) -> str:
        return f"{self._explorer_url}/{tx_hash}"

    def record_event(
        self,
        child_id: str,
        vaccine_name: str,
        dose_number: int,
        timestamp_unix: int,
        facility_id: str,
        batch_id: str,
        expiry_unix: int,
        content_hash: str,
    ) -> LedgerTx:
        contract = self._require(self._records, "records")
        fn = contract.functions.recordVaccination(
            child_id, vaccine_name, dose_number, timestamp_unix,
            facility_id, batch_id, expiry_unix, content_hash,
        )
        return self._transact(fn)

    def reward_parent(self, parent_address: str, child_id: str) -> LedgerTx:
        contract = self._require(self._reward, "reward")
        fn = contract.functions.rewardParent(
            Web3.to_checksum_address(parent_address), child_id,
        )
        return self._transact(fn)

    def anchor_digest(self, digest: str) -> LedgerTx:
        """0-value self-send with the digest bytes as transaction data."""
        hex_digest = digest.split(":", 1)[-1]
        try:
            tx = {
                "to": self._account.address,
                "value": 0,
                "gas": self._digest_gas,
                "gasPrice": self._w3.eth.gas_price,
                "nonce": self._w3.eth.get_transaction_count(self._account.address),
                "chainId": self._chain_id,
                "data": bytes.fromhex(hex_digest),
            }
        except (requests.RequestException, OSError) as e:
            raise LedgerUnavailable(f"Ledger RPC unreachable: {e}")
        except ValueError as e:
            raise _rpc_error(e)
        return self._send(tx)

    def get_stats(self) -> LedgerStats:
        total_anchored = 0
        rewards = Decimal("0")
        parents = 0
        try:
            if self._records is not None:
                total_anchored, _ = self._records.functions.getContractStats().call()
            if self._reward is not None:
                _, raw_rewards, parents = self._reward.functions.getStats().call()
                rewards = Decimal(Web3.from_wei(raw_rewards, "ether"))
        except (requests.RequestException, OSError) as e:
            raise LedgerUnavailable(f"Ledger RPC unreachable: {e}")
        except Web3Exception as e:
            raise LedgerRejected(f"Ledger stats query failed: {e}")
        except ValueError as e:
            raise _rpc_error(e)
        return LedgerStats(
            total_anchored=int(total_anchored),
            total_rewards_distributed=rewards,
            total_parents_rewarded=int(parents),
        )

    def balance_of(self, address: str) -> Decimal:
        contract = self._require(self._reward, "reward")
        try:
            raw = contract.functions.balanceOf(Web3.to_checksum_address(address)).call()
        except (requests.RequestException, OSError) as e:
            raise LedgerUnavailable(f"Ledger RPC unreachable: {e}")
        except Web3Exception as e:
            raise LedgerRejected(f"Balance query failed: {e}")
        except ValueError as e:
            raise _rpc_error(e)
        return Decimal(Web3.from_wei(raw, "ether"))

    def _require(self, contract: Any, name: str) -> Any:
        if contract is None:
            raise LedgerUnavailable(f"No {name} contract address configured")
        return contract

    def _transact(self, fn: Any) -> LedgerTx:
        sender = self._account.address
        try:
            fn.call({"from": sender})
            tx = fn.build_transaction({
                "from": sender,
                "nonce": self._w3.eth.get_transaction_count(sender),
                "chainId": self._chain_id,
            })
        except ContractLogicError as e:
            raise _rejection(e)
        except (requests.RequestException, OSError) as e:
            raise LedgerUnavailable(f"Ledger RPC unreachable: {e}")
        except Web3Exception as e:
            raise LedgerRejected(f"Ledger refused transaction: {e}")
        except ValueError as e:
            raise _rpc_error(e)
        return self._send(tx)

    def _send(self, tx: dict[str, Any]) -> LedgerTx:
        signed = self._account.sign_transaction(tx)
        try:
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
            logger.info("Sent ledger tx %s", tx_hash.hex())
            receipt = self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._timeout)
        except TimeExhausted as e:
            raise LedgerUnavailable(f"Timed out waiting for receipt: {e}")
        except (requests.RequestException, OSError) as e:
            raise LedgerUnavailable(f"Ledger RPC unreachable: {e}")
        except Web3Exception as e:
            raise LedgerRejected(f"Ledger refused transaction: {e}")
        except ValueError as e:
            raise _rpc_error(e)

        if receipt.status != 1:
            raise LedgerRejected(
                f"Transaction reverted: {tx_hash.hex()}",
                details={"tx_hash": tx_hash.hex(), "block_number": receipt.blockNumber},
            )
        logger.info("Confirmed in block %s: %s", receipt.blockNumber, self.explorer_link(tx_hash.hex()))
        return LedgerTx(tx_hash=tx_hash.hex(), block_number=receipt.blockNumber)


def _rejection(error: ContractLogicError) -> LedgerRejected:
    message = str(error)
    if ALREADY_REWARDED_REASON.lower() in message.lower():
        return AlreadyRewarded(ALREADY_REWARDED_REASON)
    return LedgerRejected(f"Contract reverted: {message}")


def _rpc_error(error: ValueError) -> LedgerRejected:
    """JSON-RPC error responses surface from web3 as a ValueError carrying the node's payload."""
    payload = error.args[0] if error.args else None
    if isinstance(payload, dict):
        return LedgerRejected(
            f"Ledger node rejected request: {payload.get('message', payload)}",
            details={"rpc_code": payload.get("code")},
        )
    return LedgerRejected(f"Ledger node rejected request: {error}")
