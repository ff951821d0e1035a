"""
PoWToken Mining Server

Holds the canonical engine and accepts signed mint requests over HTTP.
Miners connect to:
- Read the current challenge and target
- Submit solutions (signed with their wallet key)
- Check balances
"""

import os
import json
import time
import threading
from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler
from urllib.parse import urlparse
from typing import Dict, Any, Optional

from . import config
from .crypto_utils import to_hex
from .errors import MiningError
from .node import Node
from .wallet import MintRequest


# Server state
_node: Optional[Node] = None
_lock = threading.Lock()
_server_data_dir = os.path.join(config.DEFAULT_DATA_DIR, "server")


def configure(data_dir: str = None, node: Optional[Node] = None):
    """Point the server at a data directory, or hand it a ready node (tests)."""
    global _node, _server_data_dir
    if data_dir is not None:
        _server_data_dir = data_dir
    _node = node


def get_node() -> Node:
    """Get or load the server node."""
    global _node
    if _node is None:
        _node = Node.open(_server_data_dir)
        print(f"Loaded node: epoch {_node.engine.state.epoch_count}, block {_node.chain.height}")
    return _node


class MiningServerHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the mining server."""

    def log_message(self, format, *args):
        """Custom logging."""
        print(f"[{time.strftime('%H:%M:%S')}] {args[0]}")

    def _send_json(self, data: Dict[str, Any], status: int = 200):
        """Send a JSON response."""
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Access-Control-Allow-Origin', '*')
        self.end_headers()
        self.wfile.write(json.dumps(data).encode())

    def _read_json(self) -> Optional[Dict[str, Any]]:
        """Read JSON from request body."""
        try:
            content_length = int(self.headers.get('Content-Length', 0))
            body = self.rfile.read(content_length)
            return json.loads(body.decode())
        except (ValueError, UnicodeDecodeError):
            return None

    def do_OPTIONS(self):
        """Handle CORS preflight."""
        self.send_response(200)
        self.send_header('Access-Control-Allow-Origin', '*')
        self.send_header('Access-Control-Allow-Methods', 'GET, POST, OPTIONS')
        self.send_header('Access-Control-Allow-Headers', 'Content-Type')
        self.end_headers()

    def do_GET(self):
        """Handle GET requests."""
        path = urlparse(self.path).path

        if path == '/':
            self._handle_info()
        elif path == '/mining/challenge':
            self._handle_challenge()
        elif path == '/mining/stats':
            self._handle_stats()
        elif path.startswith('/balance/'):
            self._handle_balance(path[len('/balance/'):])
        else:
            self._send_json({'error': 'Not found'}, 404)

    def do_POST(self):
        """Handle POST requests."""
        path = urlparse(self.path).path

        if path == '/mint':
            self._handle_mint()
        else:
            self._send_json({'error': 'Not found'}, 404)

    def _handle_info(self):
        """Server info endpoint."""
        node = get_node()
        self._send_json({
            'name': 'PoWToken Mining Server',
            'version': '1.0.0',
            'token': node.engine.params.name,
            'symbol': node.engine.params.symbol,
            'block_height': node.chain.height,
            'epoch_count': node.engine.state.epoch_count,
            'timestamp': time.time()
        })

    def _handle_challenge(self):
        """Everything a miner needs to start hashing."""
        with _lock:
            engine = get_node().engine
            self._send_json({
                'challenge_number': to_hex(engine.get_challenge_number()),
                'mining_target': hex(engine.get_mining_target()),
                'mining_difficulty': engine.get_mining_difficulty(),
                'mining_reward': engine.get_mining_reward(),
                'epoch_count': engine.state.epoch_count,
            })

    def _handle_stats(self):
        with _lock:
            self._send_json(get_node().engine.info())

    def _handle_balance(self, address: str):
        try:
            balance = get_node().ledger.balance_of(address)
        except ValueError as e:
            self._send_json({'error': str(e)}, 400)
            return
        self._send_json({'address': address, 'balance': balance})

    def _handle_mint(self):
        """Handle a signed mint request from a miner."""
        data = self._read_json()
        if not data:
            self._send_json({'error': 'Invalid JSON'}, 400)
            return

        required = ['public_key', 'nonce', 'digest', 'challenge_number', 'signature']
        if not all(k in data for k in required):
            self._send_json({'error': f'Missing fields. Required: {required}'}, 400)
            return

        try:
            request = MintRequest.from_dict(data)
        except (TypeError, ValueError) as e:
            self._send_json({'error': f'Malformed request: {e}'}, 400)
            return

        with _lock:
            node = get_node()
            try:
                result = node.chain.submit_signed(node.engine, request)
            except MiningError as e:
                node.save()
                body = e.to_dict()
                body['success'] = False
                self._send_json(body, 400)
                return
            node.save()

        print(f"Epoch #{result.epoch_count} mined by {result.recipient} (reward {result.reward})")
        self._send_json(result.to_dict())


def make_server(host: str = "0.0.0.0", port: int = config.DEFAULT_PORT) -> ThreadingHTTPServer:
    """Build the HTTP server without starting it."""
    return ThreadingHTTPServer((host, port), MiningServerHandler)


def run_server(host: str = "0.0.0.0", port: int = config.DEFAULT_PORT):
    """Run the mining server."""
    node = get_node()

    server = make_server(host, port)
    print(f"""
╔═══════════════════════════════════════════════════════════╗
║                 PoWToken Mining Server                    ║
╠═══════════════════════════════════════════════════════════╣
║  Server running on http://{host}:{port:<5}                   ║
║                                                           ║
║  Endpoints:                                               ║
║    GET  /                    - Server info                ║
║    GET  /mining/challenge    - Current challenge/target   ║
║    GET  /mining/stats        - Engine state               ║
║    GET  /balance/<address>   - Token balance              ║
║    POST /mint                - Submit a signed solution   ║
╚═══════════════════════════════════════════════════════════╝
    """)

    engine = node.engine
    print(f"Token: {engine.params.name} ({engine.params.symbol})")
    print(f"Epoch: {engine.state.epoch_count}")
    print(f"Mining target: {engine.get_mining_target():#x}")
    print(f"Mining reward: {engine.get_mining_reward()} units")
    print()

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down server...")
        server.shutdown()


if __name__ == '__main__':
    run_server()
