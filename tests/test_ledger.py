"""Tests for the ledger clients and the anchor adapter."""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest
from web3.exceptions import ContractLogicError

from vaxledger.config import Settings
from vaxledger.errors import (
    AlreadyRewarded,
    LedgerRejected,
    LedgerUnavailable,
    ValidationError,
)
from vaxledger.ledger.anchor import LedgerAnchor
from vaxledger.ledger.client import InMemoryLedger, LedgerClient, LedgerStats, LedgerTx
from vaxledger.ledger.web3_client import Web3LedgerClient, _rejection
from vaxledger.models.certificate import CertificateRecord, CertificateType
from vaxledger.models.records import ImmunizationEvent


PARENT = "0x" + "ab" * 20
# Well-known development key (anvil/hardhat account #0); never funded on a real chain.
DEV_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


class RecordingClient:
    """Captures the arguments the anchor passes to the ledger."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.digests: list[str] = []

    def record_event(self, **kwargs) -> LedgerTx:
        self.calls.append(kwargs)
        return LedgerTx(tx_hash="0xfeed", block_number=7)

    def reward_parent(self, parent_address: str, child_id: str) -> LedgerTx:
        return LedgerTx(tx_hash="0xbeef", block_number=8)

    def anchor_digest(self, digest: str) -> LedgerTx:
        self.digests.append(digest)
        return LedgerTx(tx_hash="0xd1", block_number=9)

    def get_stats(self) -> LedgerStats:
        return LedgerStats(0, Decimal("0"), 0)

    def balance_of(self, address: str) -> Decimal:
        return Decimal("0")


def _event(given: date, batch: Optional[str] = None) -> ImmunizationEvent:
    return ImmunizationEvent.create(
        event_id="IMM-001",
        child_id="CH1234567890-001",
        vaccine_name="DTaP",
        dose_number=1,
        date_administered=given,
        administered_by="DR-007",
        location="Riyadh Central Clinic",
        batch_number=batch,
        recorded_utc=NOW,
    )


class TestInMemoryLedger:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryLedger(), LedgerClient)
        assert isinstance(RecordingClient(), LedgerClient)

    def test_blocks_increase(self) -> None:
        ledger = InMemoryLedger()
        first = ledger.anchor_digest("aa")
        second = ledger.anchor_digest("bb")
        assert second.block_number == first.block_number + 1
        assert first.tx_hash.startswith("0x") and len(first.tx_hash) == 66

    def test_reward_is_compare_and_set(self) -> None:
        ledger = InMemoryLedger()
        ledger.reward_parent(PARENT, "CH1234567890-001")
        with pytest.raises(AlreadyRewarded, match="Already rewarded for this child"):
            ledger.reward_parent(PARENT, "CH1234567890-001")
        assert ledger.is_rewarded("CH1234567890-001")

    def test_duplicate_record_rejected(self) -> None:
        ledger = InMemoryLedger()
        args = dict(
            child_id="CH1", vaccine_name="BCG", dose_number=1, timestamp_unix=0,
            facility_id="X", batch_id="B", expiry_unix=1, content_hash="sha256:00",
        )
        ledger.record_event(**args)
        with pytest.raises(LedgerRejected):
            ledger.record_event(**args)

    def test_stats(self) -> None:
        ledger = InMemoryLedger(reward_amount=Decimal("500"))
        ledger.reward_parent(PARENT, "CH1234567890-001")
        ledger.reward_parent(PARENT, "CH1234567890-002")
        ledger.anchor_digest("aa")
        stats = ledger.get_stats()
        assert stats.total_anchored == 1
        assert stats.total_rewards_distributed == Decimal("1000")
        assert stats.total_parents_rewarded == 1
        assert stats.to_dict()["total_rewards_distributed"] == "1000"

    def test_balance_accumulates_per_wallet(self) -> None:
        ledger = InMemoryLedger(reward_amount=Decimal("500"))
        ledger.reward_parent(PARENT, "CH1234567890-001")
        ledger.reward_parent(PARENT.upper().replace("0X", "0x"), "CH1234567890-002")
        assert ledger.balance_of(PARENT) == Decimal("1000")
        assert ledger.balance_of("0x" + "cd" * 20) == Decimal("0")

    def test_fail_with(self) -> None:
        ledger = InMemoryLedger(fail_with=LedgerUnavailable("down"))
        with pytest.raises(LedgerUnavailable):
            ledger.anchor_digest("aa")
        with pytest.raises(LedgerUnavailable):
            ledger.get_stats()


class TestAnchorEvent:
    def test_arguments(self) -> None:
        client = RecordingClient()
        receipt = LedgerAnchor(client).anchor_event(_event(date(2025, 3, 1)), now=NOW)

        call = client.calls[0]
        given = int(datetime(2025, 3, 1, tzinfo=timezone.utc).timestamp())
        assert call["timestamp_unix"] == given
        assert call["expiry_unix"] == given + 365 * 24 * 3600
        assert call["batch_id"] == f"BATCH_{given}"
        assert call["facility_id"] == "Riyadh Central Clinic"
        assert call["content_hash"].startswith("sha256:")
        assert receipt.ledger_ref.tx_hash == "0xfeed"
        assert receipt.anchored_at == "2025-03-15T12:00:00Z"

    def test_batch_number_passed_through(self) -> None:
        client = RecordingClient()
        LedgerAnchor(client).anchor_event(_event(date(2025, 3, 1), batch="LOT-88"), now=NOW)
        assert client.calls[0]["batch_id"] == "LOT-88"

    def test_future_date_clamped_to_now(self) -> None:
        client = RecordingClient()
        LedgerAnchor(client).anchor_event(_event(date(2025, 6, 1)), now=NOW)
        assert client.calls[0]["timestamp_unix"] == int(NOW.timestamp())

    def test_no_client(self) -> None:
        anchor = LedgerAnchor(None)
        assert not anchor.available
        with pytest.raises(LedgerUnavailable):
            anchor.anchor_event(_event(date(2025, 3, 1)))


class TestAnchorCertificate:
    def _record(self, sha: str = "ab" * 32) -> CertificateRecord:
        return CertificateRecord(
            certificate_id="CERT-SCHOOL_READINESS-CH1-20250315",
            child_id="CH1",
            certificate_type=CertificateType.SCHOOL_READINESS,
            generated_utc=NOW,
            artifact_sha256=sha,
            file_name="school_readiness_CH1_20250315.pdf",
            file_size=2048,
        )

    def test_anchors_artifact_hash(self) -> None:
        client = RecordingClient()
        LedgerAnchor(client).anchor_certificate(self._record(), now=NOW)
        assert client.digests == ["ab" * 32]

    def test_requires_hash(self) -> None:
        with pytest.raises(ValidationError):
            LedgerAnchor(RecordingClient()).anchor_certificate(self._record(sha=""))


class TestWeb3Client:
    def test_not_configured(self) -> None:
        assert Web3LedgerClient.from_settings(Settings()) is None

    def test_from_settings(self) -> None:
        client = Web3LedgerClient.from_settings(Settings(
            ledger_rpc_url="http://127.0.0.1:8545",
            ledger_private_key=DEV_KEY,
            ledger_chain_id=31337,
        ))
        assert client is not None
        assert client.address == "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
        assert client.explorer_link("0x1") == "https://explorer.vanarchain.com/tx/0x1"

    def test_missing_contract_is_unavailable(self) -> None:
        client = Web3LedgerClient("http://127.0.0.1:8545", DEV_KEY, 31337)
        with pytest.raises(LedgerUnavailable, match="reward contract"):
            client.reward_parent(PARENT, "CH1")
        with pytest.raises(LedgerUnavailable, match="reward contract"):
            client.balance_of(PARENT)

    def test_stats_without_contracts(self) -> None:
        client = Web3LedgerClient("http://127.0.0.1:8545", DEV_KEY, 31337)
        assert client.get_stats() == LedgerStats(0, Decimal("0"), 0)

    def test_revert_reason_mapping(self) -> None:
        already = _rejection(ContractLogicError("execution reverted: Already rewarded for this child"))
        other = _rejection(ContractLogicError("execution reverted: Only owner"))
        assert isinstance(already, AlreadyRewarded)
        assert type(other) is LedgerRejected
        assert "Only owner" in other.message

    def test_json_rpc_error_is_rejection(self) -> None:
        class NodeErrorEth:
            @property
            def gas_price(self) -> int:
                raise ValueError({"code": -32000, "message": "nonce too low"})

        class NodeErrorWeb3:
            eth = NodeErrorEth()

        client = Web3LedgerClient("http://127.0.0.1:8545", DEV_KEY, 31337)
        client._w3 = NodeErrorWeb3()
        with pytest.raises(LedgerRejected, match="nonce too low") as exc:
            client.anchor_digest("ab" * 32)
        assert exc.value.details["rpc_code"] == -32000
