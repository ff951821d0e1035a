"""
Tests for wallets, signed mint requests and hashing helpers
"""

import os
import json
import sys
import shutil
import tempfile
import unittest

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from powtoken.config import TokenParams
from powtoken.crypto_utils import (
    keccak256, mint_digest, normalize_address, pubkey_to_address, to_hex
)
from powtoken.engine import MiningEngine
from powtoken.environment import SimulatedChain
from powtoken.errors import InvalidSignature
from powtoken.ledger import InMemoryLedger, RecordingEventSink
from powtoken.miner import find_solution
from powtoken.wallet import (
    Wallet, MintRequest, generate_keypair, sign_message, verify_signature, list_wallets
)


class TestCrypto(unittest.TestCase):
    """Test hashing and address helpers."""

    def test_keccak256_empty(self):
        """keccak-256, not NIST SHA3-256."""
        self.assertEqual(
            keccak256(b"").hex(),
            "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
        )

    def test_mint_digest_packing(self):
        challenge = bytes(range(32))
        address = "0x" + "11" * 20
        expected = keccak256(challenge + b'\x11' * 20 + (5).to_bytes(32, 'big'))
        self.assertEqual(mint_digest(challenge, address, 5), expected)

    def test_mint_digest_rejects_bad_input(self):
        address = "0x" + "11" * 20
        with self.assertRaises(ValueError):
            mint_digest(bytes(31), address, 0)
        with self.assertRaises(ValueError):
            mint_digest(bytes(32), "0x1234", 0)
        with self.assertRaises(ValueError):
            mint_digest(bytes(32), address, -1)

    def test_normalize_address(self):
        self.assertEqual(normalize_address("0X" + "AB" * 20), "0x" + "ab" * 20)
        self.assertEqual(normalize_address(b'\xab' * 20), "0x" + "ab" * 20)


class TestKeys(unittest.TestCase):
    """Test keypair generation and signatures."""

    def test_generate_keypair(self):
        private_key, public_key = generate_keypair()
        self.assertEqual(len(private_key), 64)   # 32 bytes hex
        self.assertEqual(len(public_key), 128)   # 64 bytes hex

    def test_address_format(self):
        wallet = Wallet.generate()
        self.assertTrue(wallet.address.startswith("0x"))
        self.assertEqual(len(wallet.address), 42)
        self.assertEqual(wallet.address, pubkey_to_address(wallet.public_key))

    def test_sign_and_verify(self):
        private_key, public_key = generate_keypair()
        message = b"Hello, PoWToken!"
        signature = sign_message(private_key, message)

        self.assertTrue(verify_signature(public_key, message, signature))
        self.assertFalse(verify_signature(public_key, b"Wrong message", signature))

    def test_garbage_signature(self):
        _, public_key = generate_keypair()
        self.assertFalse(verify_signature(public_key, b"msg", "00" * 64))
        self.assertFalse(verify_signature(public_key, b"msg", "not hex"))


class TestMintRequest(unittest.TestCase):
    """Test signed mint requests."""

    def setUp(self):
        self.wallet = Wallet.generate()
        self.challenge = keccak256(b"challenge")
        self.digest = mint_digest(self.challenge, self.wallet.address, 42)

    def test_signed_request_verifies(self):
        request = self.wallet.sign_mint(42, self.digest, self.challenge)
        self.assertTrue(request.verify())
        self.assertEqual(request.address, self.wallet.address)
        self.assertEqual(request.digest, to_hex(self.digest))

    def test_tampered_request_fails(self):
        request = self.wallet.sign_mint(42, self.digest, self.challenge)
        request.nonce = 43
        self.assertFalse(request.verify())

    def test_unsigned_request_fails(self):
        request = MintRequest(
            public_key=self.wallet.public_key,
            nonce=42,
            digest=to_hex(self.digest),
            challenge_number=to_hex(self.challenge)
        )
        self.assertFalse(request.verify())

    def test_dict_round_trip(self):
        request = self.wallet.sign_mint(42, self.digest, self.challenge)
        restored = MintRequest.from_dict(request.to_dict())
        self.assertEqual(restored, request)
        self.assertTrue(restored.verify())


class TestSignedSubmission(unittest.TestCase):
    """Test minting through SimulatedChain.submit_signed."""

    def setUp(self):
        self.chain = SimulatedChain()
        self.ledger = InMemoryLedger()
        self.engine = MiningEngine(TokenParams(max_target=2 ** 255), self.chain,
                                   self.ledger, RecordingEventSink())
        self.chain.mine_block()
        self.wallet = Wallet.generate()

    def _signed_solution(self):
        challenge = self.engine.get_challenge_number()
        solution = find_solution(challenge, self.engine.get_mining_target(), self.wallet.address)
        return self.wallet.sign_mint(solution.nonce, solution.digest, challenge)

    def test_submit_signed(self):
        result = self.chain.submit_signed(self.engine, self._signed_solution())
        self.assertEqual(result.recipient, self.wallet.address)
        self.assertEqual(self.ledger.balance_of(self.wallet.address), result.reward)

    def test_submit_tampered(self):
        request = self._signed_solution()
        # Swap in someone else's key: signature no longer matches
        request.public_key = Wallet.generate().public_key

        with self.assertRaises(InvalidSignature):
            self.chain.submit_signed(self.engine, request)
        self.assertEqual(self.engine.state.epoch_count, 0)


class TestWalletFiles(unittest.TestCase):
    """Test saving and loading wallets."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_create_and_load(self):
        wallet = Wallet.create("test_wallet", wallet_dir=self.temp_dir)
        loaded = Wallet.load("test_wallet", wallet_dir=self.temp_dir)

        self.assertEqual(wallet.address, loaded.address)
        self.assertEqual(wallet.public_key, loaded.public_key)

    def test_encrypted_wallet(self):
        wallet = Wallet.create("locked", password="hunter2", wallet_dir=self.temp_dir)
        loaded = Wallet.load("locked", password="hunter2", wallet_dir=self.temp_dir)

        message = b"signed after reload"
        self.assertTrue(wallet.verify(message, loaded.sign(message)))

    def test_wrong_password(self):
        Wallet.create("locked", password="hunter2", wallet_dir=self.temp_dir)
        with self.assertRaises(ValueError):
            Wallet.load("locked", password="hunter3", wallet_dir=self.temp_dir)

    def test_keystore_does_not_hold_plain_key(self):
        wallet = Wallet.create("locked", password="hunter2", wallet_dir=self.temp_dir)
        with open(os.path.join(self.temp_dir, "locked.wallet")) as f:
            data = json.load(f)

        self.assertNotIn('private_key', data)
        self.assertNotIn(wallet._private_key, json.dumps(data))
        self.assertEqual(len(bytes.fromhex(data['nonce'])), 12)
        self.assertEqual(len(bytes.fromhex(data['tag'])), 16)

    def test_tampered_keystore(self):
        Wallet.create("locked", password="hunter2", wallet_dir=self.temp_dir)
        path = os.path.join(self.temp_dir, "locked.wallet")
        with open(path) as f:
            data = json.load(f)
        encrypted = bytearray(bytes.fromhex(data['encrypted_private_key']))
        encrypted[0] ^= 0x01
        data['encrypted_private_key'] = encrypted.hex()
        with open(path, 'w') as f:
            json.dump(data, f)

        with self.assertRaises(ValueError):
            Wallet.load("locked", password="hunter2", wallet_dir=self.temp_dir)

    def test_list_wallets(self):
        self.assertEqual(list_wallets(self.temp_dir), [])
        Wallet.create("bob", wallet_dir=self.temp_dir)
        Wallet.create("alice", wallet_dir=self.temp_dir)
        self.assertEqual(list_wallets(self.temp_dir), ["alice", "bob"])

    def test_list_missing_dir(self):
        self.assertEqual(list_wallets(os.path.join(self.temp_dir, "missing")), [])


if __name__ == '__main__':
    unittest.main()
