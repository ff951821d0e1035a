"""
Cryptographic utilities for PoWToken

Mint digests use keccak-256 over the packed (challenge, address, nonce)
triple, so solutions are byte-compatible with EVM miners. Keystore keys are
stretched with Argon2id.
"""

from typing import Union

from argon2.low_level import Type, hash_secret_raw
from Crypto.Hash import keccak

from . import config

ZERO_HASH = b'\x00' * 32
ADDRESS_LENGTH = 20


def keccak256(data: Union[str, bytes]) -> bytes:
    """Compute keccak-256 (the Ethereum variant, not NIST SHA3-256)."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def to_hex(data: bytes) -> str:
    return '0x' + data.hex()


def from_hex(value: Union[str, bytes]) -> bytes:
    """Accept raw bytes or a hex string with or without 0x prefix."""
    if isinstance(value, bytes):
        return value
    if value.startswith(('0x', '0X')):
        value = value[2:]
    return bytes.fromhex(value)


def address_to_bytes(address: Union[str, bytes]) -> bytes:
    """
    Convert an address to its 20 raw bytes.

    Raises:
        ValueError: If the address is not 20 bytes long
    """
    raw = from_hex(address)
    if len(raw) != ADDRESS_LENGTH:
        raise ValueError(f"address must be {ADDRESS_LENGTH} bytes, got {len(raw)}")
    return raw


def normalize_address(address: Union[str, bytes]) -> str:
    """Canonical lowercase 0x-prefixed form of an address."""
    return to_hex(address_to_bytes(address))


def pubkey_to_address(public_key: Union[str, bytes]) -> str:
    """Ethereum-style address: last 20 bytes of keccak-256 of the raw public key."""
    return to_hex(keccak256(from_hex(public_key))[-ADDRESS_LENGTH:])


def mint_digest(challenge_number: bytes, address: Union[str, bytes], nonce: int) -> bytes:
    """
    Compute the mint digest for proof-of-work.

    Packs the 32-byte challenge, the 20-byte address and the nonce as a
    big-endian uint256, then hashes with keccak-256.

    Args:
        challenge_number: Current 32-byte challenge
        address: Address of the miner who will receive the reward
        nonce: Candidate nonce

    Returns:
        32-byte digest

    Raises:
        ValueError: If the nonce is outside uint256 or the inputs are malformed
    """
    if not 0 <= nonce <= config.UINT256_MAX:
        raise ValueError("nonce must fit in uint256")
    if len(challenge_number) != 32:
        raise ValueError("challenge number must be 32 bytes")
    packed = challenge_number + address_to_bytes(address) + nonce.to_bytes(32, 'big')
    return keccak256(packed)


def digest_to_int(digest: bytes) -> int:
    return int.from_bytes(digest, 'big')


def meets_target(digest: bytes, target: int) -> bool:
    """A digest is a valid solution when its numeric value does not exceed target."""
    return digest_to_int(digest) <= target


def derive_key(password: str, salt: bytes) -> bytes:
    """
    Stretch a password into a symmetric key with Argon2id.

    Memory-hard, so brute forcing a stolen keystore file is expensive.
    """
    return hash_secret_raw(
        password.encode('utf-8'),
        salt,
        time_cost=config.ARGON2_TIME_COST,
        memory_cost=config.ARGON2_MEMORY_COST,
        parallelism=config.ARGON2_PARALLELISM,
        hash_len=config.ARGON2_HASH_LEN,
        type=Type.ID
    )
