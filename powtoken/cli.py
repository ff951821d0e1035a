#!/usr/bin/env python3
"""
PoWToken Command Line Interface

Usage:
    powtoken init [--preset=<classic|fast>] [--max-target=<hex>] [--force]
    powtoken info
    powtoken mine [--count=<n>] [--wallet=<name>] [--threads=<n>] [--blocks-per-solve=<n>]
    powtoken balance <address>
    powtoken digest <challenge> <address> <nonce>
    powtoken check <challenge> <address> <nonce> <digest> <target>
    powtoken wallet create <name> [--password=<pwd>]
    powtoken wallet info [<name>]
    powtoken wallet list
    powtoken server start [--port=<port>]

Server-based Mining:
    powtoken mine --server http://your-server:8545 --count 10
"""

import os
import sys
import getpass
import logging
import argparse

from powtoken import config
from powtoken.crypto_utils import from_hex, to_hex
from powtoken.engine import MiningEngine
from powtoken.miner import Miner, MultiThreadedMiner, LocalBackend
from powtoken.mining_client import MiningClient, ServerError
from powtoken.node import Node
from powtoken.server import configure, run_server
from powtoken.wallet import Wallet, list_wallets


def print_header():
    """Print the PoWToken header."""
    print("""
╔═══════════════════════════════════════════════════════════╗
║                        PoWToken                           ║
║        proof-of-work mineable token, halving issuance     ║
╚═══════════════════════════════════════════════════════════╝
""")


def format_units(amount: int, decimals: int) -> str:
    """Render base units as a decimal token amount."""
    whole, frac = divmod(amount, 10 ** decimals)
    if decimals == 0:
        return str(whole)
    return f"{whole}.{frac:0{decimals}d}"


def get_or_create_wallet(name: str, password: str) -> Wallet:
    """Load a wallet, creating it on first use."""
    if name in list_wallets():
        return Wallet.load(name, password)
    print(f"Creating new wallet: {name}")
    return Wallet.create(name, password)


def cmd_init(args):
    """Deploy a fresh engine in the data directory."""
    if args.preset not in config.PRESETS:
        print(f"Unknown preset '{args.preset}'. Choose from: {', '.join(config.PRESETS)}")
        return 1

    if os.path.exists(os.path.join(args.data_dir, Node.ENGINE_FILE)) and not args.force:
        print(f"A token is already deployed in {args.data_dir}! Use --force to replace it.")
        return 1

    params = config.PRESETS[args.preset]
    if args.max_target:
        try:
            params = params.with_overrides(max_target=int(args.max_target, 16))
        except ValueError as e:
            print(f"❌ Invalid --max-target: {e}")
            return 1

    node = Node.create(params, args.data_dir)
    node.save()

    print(f"\n✅ Deployed {params.name} ({params.symbol})")
    print(f"   Data directory: {args.data_dir}")
    print(f"   Challenge: {to_hex(node.engine.get_challenge_number())}")
    print(f"   Mining target: {node.engine.get_mining_target():#x}")
    return 0


def cmd_info(args):
    """Show engine state."""
    if args.server:
        try:
            info = MiningClient(args.server).get_stats()
        except ServerError as e:
            print(f"❌ {e}")
            return 1
    else:
        info = Node.open(args.data_dir).engine.info()

    decimals = info['decimals']
    print(f"\n📊 {info['name']} ({info['symbol']})")
    print("-" * 40)
    print(f"  Epoch: {info['epoch_count']}")
    print(f"  Reward era: {info['reward_era']}")
    print(f"  Mining reward: {format_units(info['mining_reward'], decimals)}")
    print(f"  Tokens minted: {format_units(info['tokens_minted'], decimals)}")
    print(f"  Era supply cap: {format_units(info['max_supply_for_era'], decimals)}")
    print(f"  Total supply: {format_units(info['total_supply'], decimals)}")
    print(f"  Mining target: {info['mining_target']}")
    print(f"  Mining difficulty: {info['mining_difficulty']}")
    print(f"  Challenge: {info['challenge_number']}")

    stats = info['statistics']
    if stats['last_reward_to']:
        print(f"  Last reward: {format_units(stats['last_reward_amount'], decimals)} "
              f"to {stats['last_reward_to']} at block {stats['last_reward_block']}")
    return 0


def cmd_mine(args):
    """Mine solutions locally or against a server."""
    try:
        wallet = get_or_create_wallet(args.wallet, args.password or "")
    except (OSError, ValueError) as e:
        print(f"Error loading wallet: {e}")
        return 1

    print(f"\n📍 Address: {wallet.address}")

    node = None
    if args.server:
        backend = MiningClient(args.server)
        if not backend.is_connected():
            print(f"❌ Failed to connect to server: {backend.last_error}")
            return 1
        print(f"✅ Connected to {args.server}")
    else:
        node = Node.open(args.data_dir)
        backend = LocalBackend(node.engine, node.chain, blocks_per_solve=args.blocks_per_solve)
        print(f"📦 Node loaded: epoch {node.engine.state.epoch_count}, block {node.chain.height}")

    if args.threads > 1:
        miner = MultiThreadedMiner(wallet, backend, num_threads=args.threads)
    else:
        miner = Miner(wallet, backend)

    try:
        if args.count > 0:
            print(f"\n⛏️  Mining {args.count} solution(s)...\n")
        else:
            print("\n⛏️  Mining continuously (Ctrl+C to stop)...\n")
        miner.mine_continuous(count=args.count, verbose=True)
    except KeyboardInterrupt:
        miner.stop()
        print("\n\n⏹️  Mining stopped by user")
    finally:
        if node is not None:
            node.save()
            print(f"\n💾 Node saved to {args.data_dir}")

    return 0


def cmd_balance(args):
    """Show the token balance of an address."""
    try:
        if args.server:
            balance = MiningClient(args.server).get_balance(args.address)
            decimals = config.DECIMALS
        else:
            node = Node.open(args.data_dir)
            balance = node.ledger.balance_of(args.address)
            decimals = node.engine.params.decimals
    except (ValueError, ServerError) as e:
        print(f"❌ {e}")
        return 1

    print(f"💰 {args.address}: {format_units(balance, decimals)}")
    return 0


def cmd_digest(args):
    """Compute the mint digest for a nonce."""
    try:
        digest = MiningEngine.get_mint_digest(
            int(args.nonce), b'', from_hex(args.challenge), args.address)
    except ValueError as e:
        print(f"❌ {e}")
        return 1
    print(to_hex(digest))
    return 0


def cmd_check(args):
    """Check a candidate solution against an explicit target."""
    try:
        ok = MiningEngine.check_mint_solution(
            int(args.nonce), args.digest, from_hex(args.challenge),
            args.address, int(args.target, 16))
    except ValueError as e:
        print(f"❌ {e}")
        return 1
    print("✅ valid" if ok else "❌ invalid")
    return 0 if ok else 1


def cmd_wallet_create(args):
    """Create a new wallet."""
    name = args.name
    password = args.password

    if password is None:
        password = getpass.getpass("Enter wallet password (or enter for none): ")
        if password:
            confirm = getpass.getpass("Confirm password: ")
            if password != confirm:
                print("Passwords don't match!")
                return 1

    if name in list_wallets():
        print(f"Wallet '{name}' already exists!")
        return 1

    wallet = Wallet.create(name, password)

    print("\n✅ Wallet created successfully!")
    print(f"\n📁 Name: {wallet.name}")
    print(f"📍 Address: {wallet.address}")
    print(f"🔑 Public Key: {wallet.public_key}")
    print("\n⚠️  IMPORTANT: Keep your password safe! Lost passwords cannot be recovered.")

    return 0


def cmd_wallet_info(args):
    """Show wallet information."""
    name = args.name or "default"

    if name not in list_wallets():
        print(f"Wallet '{name}' not found!")
        return 1

    try:
        wallet = Wallet.load(name, args.password or "")
    except (OSError, ValueError) as e:
        print(f"Error loading wallet: {e}")
        return 1

    print("\n📁 Wallet Information:")
    print("-" * 40)
    for key, value in wallet.get_info().items():
        print(f"  {key}: {value}")

    return 0


def cmd_wallet_list(args):
    """List wallets."""
    wallets = list_wallets()
    if not wallets:
        print("No wallets found. Create one with: powtoken wallet create <name>")
        return 0

    print(f"\n📁 Wallets ({len(wallets)}):")
    for name in wallets:
        print(f"  - {name}")
    return 0


def cmd_server_start(args):
    """Start the mining server."""
    configure(data_dir=args.data_dir)
    run_server(args.host, args.port)
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='PoWToken - proof-of-work mineable token',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--data-dir', '-d', type=str, default=config.DEFAULT_DATA_DIR,
                        help='Node data directory')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Log engine activity')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Init command
    init_parser = subparsers.add_parser('init', help='Deploy a new token')
    init_parser.add_argument('--preset', type=str, default=config.DEFAULT_PRESET,
                             help=f"Parameter preset ({', '.join(config.PRESETS)})")
    init_parser.add_argument('--max-target', type=str, default=None,
                             help='Override the easiest target (hex)')
    init_parser.add_argument('--force', action='store_true',
                             help='Replace an existing deployment')

    # Info command
    info_parser = subparsers.add_parser('info', help='Show mining state')
    info_parser.add_argument('--server', type=str, default=None,
                             help='Mining server URL')

    # Mine command
    mine_parser = subparsers.add_parser('mine', help='Mine solutions')
    mine_parser.add_argument('--count', '-n', type=int, default=1,
                             help='Number of solutions to mine (0 for continuous)')
    mine_parser.add_argument('--wallet', '-w', type=str, default='default',
                             help='Wallet name')
    mine_parser.add_argument('--password', '-p', type=str, default='',
                             help='Wallet password')
    mine_parser.add_argument('--threads', '-t', type=int, default=1,
                             help='Number of mining threads')
    mine_parser.add_argument('--blocks-per-solve', type=int, default=0,
                             help='Empty blocks to seal before each local submission')
    mine_parser.add_argument('--server', type=str, default=None,
                             help='Mining server URL (e.g., http://localhost:8545)')

    # Balance command
    balance_parser = subparsers.add_parser('balance', help='Show a token balance')
    balance_parser.add_argument('address', help='Address (0x...)')
    balance_parser.add_argument('--server', type=str, default=None,
                                help='Mining server URL')

    # Debug helpers
    digest_parser = subparsers.add_parser('digest', help='Compute a mint digest')
    digest_parser.add_argument('challenge', help='Challenge number (hex)')
    digest_parser.add_argument('address', help='Miner address (0x...)')
    digest_parser.add_argument('nonce', help='Nonce (decimal)')

    check_parser = subparsers.add_parser('check', help='Check a solution against a target')
    check_parser.add_argument('challenge', help='Challenge number (hex)')
    check_parser.add_argument('address', help='Miner address (0x...)')
    check_parser.add_argument('nonce', help='Nonce (decimal)')
    check_parser.add_argument('digest', help='Claimed digest (hex)')
    check_parser.add_argument('target', help='Target (hex)')

    # Wallet commands
    wallet_parser = subparsers.add_parser('wallet', help='Wallet commands')
    wallet_sub = wallet_parser.add_subparsers(dest='wallet_cmd')

    create_parser = wallet_sub.add_parser('create', help='Create a new wallet')
    create_parser.add_argument('name', help='Wallet name')
    create_parser.add_argument('--password', '-p', type=str, default=None,
                               help='Wallet password')

    winfo_parser = wallet_sub.add_parser('info', help='Show wallet info')
    winfo_parser.add_argument('name', nargs='?', default='default', help='Wallet name')
    winfo_parser.add_argument('--password', '-p', type=str, default='',
                              help='Wallet password')

    wallet_sub.add_parser('list', help='List all wallets')

    # Server commands
    server_parser = subparsers.add_parser('server', help='Mining server commands')
    server_sub = server_parser.add_subparsers(dest='server_cmd')

    server_start_parser = server_sub.add_parser('start', help='Start mining server')
    server_start_parser.add_argument('--port', '-p', type=int, default=config.DEFAULT_PORT,
                                     help=f'Port to listen on (default: {config.DEFAULT_PORT})')
    server_start_parser.add_argument('--host', type=str, default='0.0.0.0',
                                     help='Host to bind to (default: 0.0.0.0)')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(name)s %(levelname)s %(message)s'
    )

    if args.command == 'init':
        return cmd_init(args)
    elif args.command == 'info':
        return cmd_info(args)
    elif args.command == 'mine':
        return cmd_mine(args)
    elif args.command == 'balance':
        return cmd_balance(args)
    elif args.command == 'digest':
        return cmd_digest(args)
    elif args.command == 'check':
        return cmd_check(args)
    elif args.command == 'wallet':
        if args.wallet_cmd == 'create':
            return cmd_wallet_create(args)
        elif args.wallet_cmd == 'info':
            return cmd_wallet_info(args)
        elif args.wallet_cmd == 'list':
            return cmd_wallet_list(args)
        else:
            wallet_parser.print_help()
    elif args.command == 'server':
        if args.server_cmd == 'start':
            return cmd_server_start(args)
        else:
            server_parser.print_help()
    else:
        print_header()
        parser.print_help()

    return 0


if __name__ == '__main__':
    sys.exit(main())
