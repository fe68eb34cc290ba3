"""Wallet-signature verification (EIP-191 personal_sign messages)."""

import logging
import time
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature, ValidationError
from web3 import Web3

from core.errors import SignatureMismatch

logger = logging.getLogger(__name__)

SIGNATURE_LENGTH = 65
SIGN_MESSAGE_TEMPLATE = (
    "Sign this message to verify you control this wallet address.\n\nTimestamp: {timestamp}"
)


def build_sign_message(timestamp_ms: Optional[int] = None) -> str:
    """Return the text a wallet is asked to sign.

    The timestamp only makes each message distinct; it is not a server-issued
    nonce and is not checked on verification.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return SIGN_MESSAGE_TEMPLATE.format(timestamp=timestamp_ms)


def checksum_address(address: str) -> str:
    """EIP-55 checksum form of ``address``; raises ValueError if it is not an address."""
    return Web3.to_checksum_address(address.strip())


def decode_signature(signature: str) -> bytes:
    raw = signature.strip()
    if raw.startswith(("0x", "0X")):
        raw = raw[2:]
    sig_bytes = bytes.fromhex(raw)
    if len(sig_bytes) != SIGNATURE_LENGTH:
        raise ValueError(f"Invalid signature length, expected {SIGNATURE_LENGTH} bytes")
    return sig_bytes


def recover_address(message: str, signature: bytes) -> str:
    """Recover the checksummed signer address for ``message``."""
    return Account.recover_message(encode_defunct(text=message), signature=signature)


class SignatureVerifier:
    """Check that a message was signed by the key behind a claimed address."""

    def verify(self, claimed_address: str, message: str, signature: str) -> bool:
        try:
            expected = checksum_address(claimed_address)
        except ValueError:
            logger.info("Rejected wallet login: malformed address")
            return False

        try:
            sig_bytes = decode_signature(signature)
        except ValueError as exc:
            logger.info("Rejected wallet signature for %s: %s", expected, exc)
            return False

        try:
            recovered = recover_address(message, sig_bytes)
        except (BadSignature, ValidationError, ValueError) as exc:
            logger.info("Could not recover signer for %s: %s", expected, exc)
            return False

        if recovered != expected:
            logger.info("Wallet signature for %s recovered to a different address", expected)
            return False
        return True

    def require_valid(self, claimed_address: str, message: str, signature: str) -> str:
        """Verify or raise ``SignatureMismatch``; returns the lowercase address."""
        if not self.verify(claimed_address, message, signature):
            raise SignatureMismatch(
                "Signature verification failed: recovered address does not match provided address"
            )
        return claimed_address.strip().lower()
