"""Tests for on-chain anchoring of allocation commitments."""

from types import SimpleNamespace

import pytest

from treasury_options.crypto.anchor import anchor_to_chain, commitment_payload

ROOT = "ab" * 32
TX_HASH = b"\x12" * 32


class _FakeEth:
    def __init__(self) -> None:
        self.sent: list[bytes] = []

    def get_transaction_count(self, address: str) -> int:
        return 7

    def send_raw_transaction(self, raw: bytes) -> bytes:
        self.sent.append(bytes(raw))
        return TX_HASH

    def wait_for_transaction_receipt(self, tx_hash: bytes, timeout: int) -> SimpleNamespace:
        return SimpleNamespace(blockNumber=42)


class _FakeWeb3:
    last: "_FakeWeb3"

    def __init__(self, provider: str) -> None:
        self.provider = provider
        self.eth = _FakeEth()
        _FakeWeb3.last = self

    def to_wei(self, value: str, unit: str) -> int:
        return int(value) * 10**9

    @staticmethod
    def to_hex(value: bytes) -> str:
        return "0x" + value.hex()


class TestCommitmentPayload:
    def test_sha256_prefix(self) -> None:
        assert commitment_payload(f"sha256:{ROOT}") == bytes.fromhex(ROOT)

    def test_hex_prefix(self) -> None:
        assert commitment_payload(f"0x{ROOT}") == bytes.fromhex(ROOT)

    def test_wrong_length_rejected(self) -> None:
        with pytest.raises(ValueError):
            commitment_payload("sha256:abcd")


class TestAnchorToChain:
    def test_sends_root_and_records_receipt(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("web3.Web3", _FakeWeb3)
        monkeypatch.setattr("web3.HTTPProvider", lambda url: url)

        record = anchor_to_chain(
            pool_id=3,
            commitment=f"sha256:{ROOT}",
            rpc_url="http://localhost:8545",
            private_key="0x" + "11" * 32,
        )

        assert _FakeWeb3.last.provider == "http://localhost:8545"
        assert len(_FakeWeb3.last.eth.sent) == 1
        assert record.pool_id == 3
        assert record.tx_hash == "0x" + TX_HASH.hex()
        assert record.block_number == 42
        assert record.chain_id == 11155111
        assert record.explorer_url.endswith(record.tx_hash)

    def test_bad_commitment_sends_nothing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("web3.Web3", _FakeWeb3)
        monkeypatch.setattr("web3.HTTPProvider", lambda url: url)
        with pytest.raises(ValueError):
            anchor_to_chain(3, "sha256:00", "http://localhost:8545", "0x" + "11" * 32)
