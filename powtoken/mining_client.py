"""
PoWToken Mining Client

Client for miners to connect to a mining server. Implements the same
backend surface as miner.LocalBackend, so Miner works unchanged over HTTP.
"""

import json
import urllib.request
import urllib.error
from typing import Dict, Any, Optional

from .crypto_utils import from_hex
from .engine import MintResult
from .errors import error_from_dict
from .wallet import MintRequest


class ServerError(Exception):
    """The server could not be reached or answered with something unexpected."""


class MiningClient:
    """
    Client for connecting to a PoWToken mining server.

    Usage:
        client = MiningClient("http://localhost:8545")
        miner = Miner(wallet, client)
        miner.mine_continuous(count=1)
    """

    def __init__(self, server_url: str, timeout: int = 30):
        """
        Initialize the mining client.

        Args:
            server_url: URL of the mining server (e.g., "http://localhost:8545")
            timeout: Request timeout in seconds
        """
        self.server_url = server_url.rstrip('/')
        self.timeout = timeout
        self._last_error: Optional[str] = None

    def _request(self, method: str, path: str, data: Optional[Dict] = None) -> Dict[str, Any]:
        """
        Make an HTTP request to the server.

        Raises:
            MiningError: If the server rejected a mint
            ServerError: On connection problems or unexpected responses
        """
        url = f"{self.server_url}{path}"

        if method == 'GET':
            req = urllib.request.Request(url)
        else:
            body = json.dumps(data).encode() if data else b''
            req = urllib.request.Request(url, data=body, method=method)
            req.add_header('Content-Type', 'application/json')

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                return json.loads(response.read().decode())

        except urllib.error.HTTPError as e:
            try:
                error_body = json.loads(e.read().decode())
            except ValueError:
                error_body = {}
            self._last_error = error_body.get('message') or error_body.get('error') or str(e)
            if 'code' in error_body:
                raise error_from_dict(error_body) from e
            raise ServerError(self._last_error) from e

        except urllib.error.URLError as e:
            self._last_error = f"Connection failed: {e.reason}"
            raise ServerError(self._last_error) from e

    def get_server_info(self) -> Dict[str, Any]:
        """Get server information."""
        return self._request('GET', '/')

    def get_challenge(self) -> Dict[str, Any]:
        return self._request('GET', '/mining/challenge')

    def get_stats(self) -> Dict[str, Any]:
        return self._request('GET', '/mining/stats')

    def get_challenge_number(self) -> bytes:
        return from_hex(self.get_challenge()['challenge_number'])

    def get_mining_target(self) -> int:
        return int(self.get_challenge()['mining_target'], 16)

    def get_mining_reward(self) -> int:
        return self.get_challenge()['mining_reward']

    def get_balance(self, address: str) -> int:
        return self._request('GET', f'/balance/{address}')['balance']

    def submit(self, request: MintRequest) -> MintResult:
        """
        Submit a signed solution to the server.

        Returns:
            MintResult for an accepted solution

        Raises:
            MiningError: The engine's rejection, rebuilt from the response
        """
        result = self._request('POST', '/mint', request.to_dict())
        return MintResult(
            recipient=result['recipient'],
            nonce=result['nonce'],
            digest=from_hex(result['digest']),
            reward=result['reward'],
            epoch_count=result['epoch_count'],
            reward_era=result['reward_era'],
            new_challenge_number=from_hex(result['new_challenge_number']),
            mining_target=int(result['mining_target'], 16),
            retargeted=result.get('retargeted', False)
        )

    def is_connected(self) -> bool:
        """Check if server is reachable."""
        try:
            self.get_server_info()
        except ServerError:
            return False
        return True

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error
