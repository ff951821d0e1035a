"""
PoWToken Wallet - Key management and mint request signing
"""

import os
import json
import time
import hashlib
import secrets
from pathlib import Path
from typing import Dict, Any, List, Tuple, Union
from dataclasses import dataclass

from Crypto.Cipher import AES
from ecdsa import SigningKey, VerifyingKey, SECP256k1, BadSignatureError
from ecdsa.errors import MalformedPointError

from . import config
from .crypto_utils import (
    keccak256, derive_key, pubkey_to_address, from_hex, to_hex
)


DEFAULT_WALLET_DIR = os.path.join(config.DEFAULT_DATA_DIR, "wallets")


def generate_keypair() -> Tuple[str, str]:
    """
    Generate a new secp256k1 keypair.

    Returns:
        Tuple of (private_key_hex, public_key_hex)
    """
    sk = SigningKey.generate(curve=SECP256k1)
    vk = sk.get_verifying_key()
    return sk.to_string().hex(), vk.to_string().hex()


def sign_message(private_key_hex: str, message: bytes) -> str:
    """
    Sign a message with a private key.

    Args:
        private_key_hex: Private key as hex string
        message: Message bytes to sign

    Returns:
        Signature as hex string
    """
    sk = SigningKey.from_string(bytes.fromhex(private_key_hex), curve=SECP256k1)
    return sk.sign(message, hashfunc=hashlib.sha256).hex()


def verify_signature(public_key_hex: str, message: bytes, signature_hex: str) -> bool:
    """
    Verify a signature.

    Args:
        public_key_hex: Public key as hex string
        message: Original message bytes
        signature_hex: Signature to verify

    Returns:
        True if signature is valid
    """
    try:
        vk = VerifyingKey.from_string(bytes.fromhex(public_key_hex), curve=SECP256k1)
        return vk.verify(bytes.fromhex(signature_hex), message, hashfunc=hashlib.sha256)
    except (BadSignatureError, MalformedPointError, ValueError):
        return False


@dataclass
class MintRequest:
    """
    A mint submission signed by the miner.

    The signature covers the challenge, the nonce and the digest, so a
    relayed request cannot be redirected to another reward address.
    """
    public_key: str
    nonce: int
    digest: str
    challenge_number: str
    signature: str = ""

    @property
    def address(self) -> str:
        return pubkey_to_address(self.public_key)

    def message(self) -> bytes:
        return keccak256(
            from_hex(self.challenge_number)
            + self.nonce.to_bytes(32, 'big')
            + from_hex(self.digest)
        )

    def verify(self) -> bool:
        if not self.signature:
            return False
        try:
            message = self.message()
        except (ValueError, OverflowError):
            return False
        return verify_signature(self.public_key, message, self.signature)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'public_key': self.public_key,
            'nonce': self.nonce,
            'digest': self.digest,
            'challenge_number': self.challenge_number,
            'signature': self.signature,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MintRequest':
        return cls(
            public_key=data['public_key'],
            nonce=int(data['nonce']),
            digest=data['digest'],
            challenge_number=data['challenge_number'],
            signature=data.get('signature', "")
        )


class Wallet:
    """
    PoWToken Wallet - a secp256k1 identity that receives mining rewards.

    The wallet stores:
    - ECDSA keypair for signing mint requests
    - The address rewards are credited to
    """

    EXTENSION = ".wallet"

    def __init__(self, name: str, private_key: str, public_key: str, address: str):
        self.name = name
        self._private_key = private_key
        self.public_key = public_key
        self.address = address

    @classmethod
    def generate(cls, name: str = "ephemeral") -> 'Wallet':
        """Create a wallet in memory without saving it."""
        private_key, public_key = generate_keypair()
        return cls(name, private_key, public_key, pubkey_to_address(public_key))

    @classmethod
    def create(cls, name: str, password: str = "",
               wallet_dir: str = DEFAULT_WALLET_DIR) -> 'Wallet':
        """
        Create a new wallet.

        Args:
            name: Wallet name
            password: Password to encrypt private key (optional)
            wallet_dir: Directory to store wallet file

        Returns:
            New Wallet instance
        """
        wallet = cls.generate(name)
        wallet.save(wallet_dir, password)
        return wallet

    def save(self, wallet_dir: str = DEFAULT_WALLET_DIR, password: str = ""):
        """Save wallet to disk."""
        Path(wallet_dir).mkdir(parents=True, exist_ok=True)

        data = {
            'name': self.name,
            'address': self.address,
            'public_key': self.public_key,
            'created_at': time.time(),
        }
        if password:
            data.update(self._encrypt_key(self._private_key, password))
        else:
            data['private_key'] = self._private_key  # Not recommended!

        filepath = os.path.join(wallet_dir, f"{self.name}{self.EXTENSION}")
        with open(filepath, 'w') as f:
            json.dump(data, f, indent=2)

    @classmethod
    def load(cls, name: str, password: str = "",
             wallet_dir: str = DEFAULT_WALLET_DIR) -> 'Wallet':
        """
        Load wallet from disk.

        Raises:
            FileNotFoundError: If the wallet does not exist
            ValueError: If the password is wrong
        """
        filepath = os.path.join(wallet_dir, f"{name}{cls.EXTENSION}")

        with open(filepath, 'r') as f:
            data = json.load(f)

        if 'encrypted_private_key' in data:
            private_key = cls._decrypt_key(data, password)
        else:
            private_key = data['private_key']

        return cls(
            name=data['name'],
            private_key=private_key,
            public_key=data['public_key'],
            address=data['address']
        )

    @staticmethod
    def _encrypt_key(key: str, password: str) -> Dict[str, str]:
        """Encrypt the key with AES-256-GCM under an Argon2id-derived key."""
        salt = secrets.token_bytes(config.ARGON2_SALT_LEN)
        nonce = secrets.token_bytes(config.KEYSTORE_NONCE_LEN)
        cipher = AES.new(derive_key(password, salt), AES.MODE_GCM, nonce=nonce)
        encrypted, tag = cipher.encrypt_and_digest(bytes.fromhex(key))
        return {
            'encrypted_private_key': encrypted.hex(),
            'salt': salt.hex(),
            'nonce': nonce.hex(),
            'tag': tag.hex(),
        }

    @staticmethod
    def _decrypt_key(data: Dict[str, str], password: str) -> str:
        cipher = AES.new(derive_key(password, bytes.fromhex(data['salt'])), AES.MODE_GCM,
                         nonce=bytes.fromhex(data['nonce']))
        try:
            key = cipher.decrypt_and_verify(bytes.fromhex(data['encrypted_private_key']),
                                            bytes.fromhex(data['tag']))
        except ValueError as e:
            raise ValueError("wrong password or corrupted wallet file") from e
        return key.hex()

    def sign(self, message: bytes) -> str:
        """Sign a message with the wallet's private key."""
        return sign_message(self._private_key, message)

    def verify(self, message: bytes, signature: str) -> bool:
        """Verify a signature made by this wallet."""
        return verify_signature(self.public_key, message, signature)

    def sign_mint(self, nonce: int, digest: Union[bytes, str],
                  challenge_number: Union[bytes, str]) -> MintRequest:
        """Build and sign a mint request for a found solution."""
        request = MintRequest(
            public_key=self.public_key,
            nonce=nonce,
            digest=to_hex(from_hex(digest)),
            challenge_number=to_hex(from_hex(challenge_number))
        )
        request.signature = self.sign(request.message())
        return request

    def get_info(self) -> Dict[str, Any]:
        """Get wallet information."""
        return {
            'Name': self.name,
            'Address': self.address,
            'Public Key': self.public_key[:32] + "...",
        }

    def __repr__(self) -> str:
        return f"Wallet({self.name}, {self.address})"


def list_wallets(wallet_dir: str = DEFAULT_WALLET_DIR) -> List[str]:
    """List all wallet names in the wallet directory."""
    wallet_path = Path(wallet_dir)
    if not wallet_path.exists():
        return []
    return sorted(f.stem for f in wallet_path.glob(f"*{Wallet.EXTENSION}"))
