"""Blockchain anchoring of allocation commitments.

Publishing a batch means two things: handing each recipient their
inclusion proof, and making the root itself tamper-evident. Anchoring
covers the second part by embedding the root in the data field of a
0-value self-send transaction. Once mined, nobody (including the
operator) can quietly swap the batch for a different one.

No code executes on-chain here. The chain only witnesses the root.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

SEPOLIA_CHAIN_ID = 11155111


@dataclass(frozen=True)
class AnchorRecord:
    """A record of a successful commitment anchor."""
    pool_id: int
    commitment: str
    tx_hash: str
    block_number: int
    chain_id: int
    timestamp_utc: str
    explorer_url: str


def commitment_payload(commitment: str) -> bytes:
    """Raw digest bytes of a sha256: or 0x prefixed root."""
    digest = commitment.removeprefix("sha256:").removeprefix("0x")
    raw = bytes.fromhex(digest)
    if len(raw) != 32:
        raise ValueError(f"Commitment must be a 32-byte digest, got {len(raw)} bytes")
    return raw


def anchor_to_chain(
    pool_id: int,
    commitment: str,
    rpc_url: str,
    private_key: str,
    chain_id: int = SEPOLIA_CHAIN_ID,
    gas: int = 30_000,
    gas_price_gwei: str = "2",
    explorer_base: str = "https://sepolia.etherscan.io/tx/",
) -> AnchorRecord:
    """Anchor a committed allocation root on an EVM chain.

    Sends a 0-ETH self-send with the root in the data field and waits
    for one confirmation.

    Args:
        pool_id: Pool the commitment belongs to (recorded, not sent).
        commitment: The root as stored against the pool.
        rpc_url: Ethereum RPC endpoint URL.
        private_key: Hex-encoded private key for signing.
        chain_id: Network chain ID (default: Sepolia).
        gas: Gas limit for the transaction.
        gas_price_gwei: Gas price in gwei.
        explorer_base: Prefix for the block explorer link.

    Returns:
        AnchorRecord with transaction details.
    """
    from web3 import Web3, HTTPProvider
    from eth_account import Account

    data = commitment_payload(commitment)

    w3 = Web3(HTTPProvider(rpc_url))
    acct = Account.from_key(private_key)

    nonce = w3.eth.get_transaction_count(acct.address)
    tx = {
        "to": acct.address,
        "value": 0,
        "gas": gas,
        "gasPrice": w3.to_wei(gas_price_gwei, "gwei"),
        "nonce": nonce,
        "chainId": chain_id,
        "data": data,
    }

    signed = acct.sign_transaction(tx)
    tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
    tx_hex = Web3.to_hex(tx_hash)
    logger.info("Anchor tx sent for pool %s: %s", pool_id, tx_hex)

    receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=300)
    logger.info("Anchor for pool %s confirmed in block %s", pool_id, receipt.blockNumber)

    return AnchorRecord(
        pool_id=pool_id,
        commitment=commitment,
        tx_hash=tx_hex,
        block_number=receipt.blockNumber,
        chain_id=chain_id,
        timestamp_utc=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        explorer_url=f"{explorer_base}{tx_hex}",
    )
