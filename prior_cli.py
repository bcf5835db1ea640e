#!/usr/bin/env python3
"""
PRIOR Testnet Bot CLI - Interactive Console
===========================================

Numbered menu for operating the wallet fleet, plus subcommands for
unattended use:

Usage:
    python prior_cli.py                       # interactive menu
    python prior_cli.py balances
    python prior_cli.py claim
    python prior_cli.py swap --cycles 5
    python prior_cli.py swap --cycles 5 --wallet 2

Only one long-running operation is active at a time. Menu option 6 or
Ctrl+C asks it to stop; it finishes its in-flight transaction first.
"""

import sys
import signal
import asyncio
import argparse
from pathlib import Path
from typing import Awaitable, List, Optional

from rich.table import Table
from rich.panel import Panel
from rich import box

from cancellation import CancellationToken
from chain_client import ChainClient
from config import Config, ConfigManager, LOG_LEVELS
from contracts import NETWORK_NAME
from faucet import FaucetClaimer
from swap_orchestrator import SwapOrchestrator
from wallet import WalletRegistry, load_private_keys
from utils import (
    console,
    logger,
    setup_logging,
    format_amount,
    mask_sensitive,
    ConfigurationError,
    InputValidationError,
)


MENU_OPTIONS = [
    ("1", "Show All Wallet Balances"),
    ("2", "Claim Faucet (All Wallets)"),
    ("3", "Auto Swap (All Wallets)"),
    ("4", "Auto Swap (Single Wallet)"),
    ("5", "Reload Private Keys"),
    ("6", "Stop Running Operations"),
    ("7", "Exit"),
]


def parse_cycle_count(text: str) -> int:
    """Parse a positive number of swap cycles."""
    try:
        count = int(str(text).strip())
    except ValueError:
        raise InputValidationError("Invalid number of swaps") from None

    if count <= 0:
        raise InputValidationError("Invalid number of swaps")
    return count


def parse_wallet_selection(text: str, wallet_count: int) -> int:
    """
    Parse a 1-based wallet choice.

    Returns:
        0-based registry index
    """
    try:
        choice = int(str(text).strip())
    except ValueError:
        raise InputValidationError("Invalid wallet selection") from None

    if choice < 1 or choice > wallet_count:
        raise InputValidationError("Invalid wallet selection")
    return choice - 1


def print_banner(config: Config):
    """Print the CLI banner."""
    banner = (
        f"PRIOR TESTNET MULTI-WALLET BOT\n"
        f"Network: {NETWORK_NAME}\n"
        f"RPC: {mask_sensitive(config.rpc_url, 12) if config.rpc_url else 'not set'}"
    )
    console.print(Panel(banner, style="bold cyan", box=box.DOUBLE))


def print_menu():
    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column("Option", style="cyan", justify="right")
    table.add_column("Action")
    for key, label in MENU_OPTIONS:
        table.add_row(key, label)
    console.print(table)


def balances_table(registry: WalletRegistry) -> Table:
    """Get a Rich table with the cached balances of every wallet."""
    table = Table(title=f"Wallets ({len(registry)})", box=box.ROUNDED)

    table.add_column("#", style="cyan", justify="right")
    table.add_column("Address", style="green")
    table.add_column("ETH", justify="right")
    table.add_column("PRIOR", style="yellow", justify="right")
    table.add_column("USDC", justify="right")
    table.add_column("USDT", justify="right")

    for index, wallet in enumerate(registry, start=1):
        table.add_row(
            str(index),
            wallet.short_address,
            format_amount(wallet.balance_native, 4),
            format_amount(wallet.balance_prior, 2),
            format_amount(wallet.balance_usdc, 2),
            format_amount(wallet.balance_usdt, 2)
        )

    return table


class PriorBot:
    """
    Wires the chain client, wallet registry, faucet claimer and swap
    orchestrator together and tracks the single running operation.
    """

    def __init__(self, config: Config, client: Optional[ChainClient] = None):
        self.config = config
        self.client = client or ChainClient(config)
        self.registry = WalletRegistry(config.keys_file, self.client)
        self.claimer = FaucetClaimer(self.client, self.registry, config)
        self.orchestrator = SwapOrchestrator(self.client, self.registry, config)
        self.token = CancellationToken()
        self._task: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, operation: Awaitable, name: str) -> bool:
        """Run ``operation`` in the background unless one is already running."""
        if self.busy:
            logger.warning("Another operation is already running. Stop it first (option 6).")
            if asyncio.iscoroutine(operation):
                operation.close()
            return False

        self._task = asyncio.create_task(operation, name=name)
        self._task.add_done_callback(self._on_done)
        return True

    def _on_done(self, task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"{task.get_name()} failed: {error}")

    def stop(self):
        """Ask the running operation to stop at its next check."""
        self.token.cancel()
        logger.warning("Stopping all running operations...")

    async def wait(self):
        """Wait for the running operation, if any."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # Operations

    async def show_balances(self):
        await self.registry.refresh_all()
        console.print(balances_table(self.registry))

    async def claim_all(self) -> int:
        self.token.reset()
        return await self.claimer.claim_all(self.token)

    async def swap_all(self, cycles: int) -> int:
        completed = await self.orchestrator.run_swap_cycles_all_wallets(cycles, self.token)
        console.print(self.orchestrator.get_stats_table())
        return completed

    async def swap_one(self, index: int, cycles: int) -> bool:
        self.token.reset()
        return await self.orchestrator.run_swap_cycles(index, cycles, self.token)

    def reload(self) -> bool:
        """Reload keys, keeping the current wallets if the file has none."""
        try:
            self.registry.reload()
        except ConfigurationError as e:
            logger.error(str(e))
            return False
        return True


def install_stop_handler(bot: PriorBot) -> bool:
    """Route Ctrl+C to ``bot.stop`` while the event loop runs."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, bot.stop)
    except (NotImplementedError, RuntimeError):
        # Not supported on this platform; Ctrl+C raises KeyboardInterrupt
        return False
    return True


async def prompt(text: str) -> str:
    """Read a line of input without blocking the event loop."""
    answer = await asyncio.to_thread(console.input, f"[bold]{text}[/bold]")
    return answer.strip()


async def shutdown(bot: PriorBot):
    """Stop the running operation, let it finish its in-flight step, then exit."""
    if bot.busy:
        bot.stop()
        logger.info("Waiting for the running operation to finish...")
        await bot.wait()
    logger.info("Exiting program")


async def handle_choice(bot: PriorBot, choice: str) -> bool:
    """
    Handle one menu selection.

    Returns:
        False when the user chose to exit
    """
    if choice == "1":
        bot.start(bot.show_balances(), "Balance refresh")

    elif choice == "2":
        bot.start(bot.claim_all(), "Faucet claims")

    elif choice == "3":
        if bot.busy:
            logger.warning("Another operation is already running. Stop it first (option 6).")
            return True
        cycles = parse_cycle_count(await prompt("Enter number of swaps per wallet: "))
        bot.start(bot.swap_all(cycles), "Auto swap")

    elif choice == "4":
        if bot.busy:
            logger.warning("Another operation is already running. Stop it first (option 6).")
            return True
        if len(bot.registry) == 0:
            logger.error("No wallets available")
            return True

        console.print("\nAvailable Wallets:")
        for index, wallet in enumerate(bot.registry, start=1):
            console.print(
                f"{index}. {wallet.short_address} (PRIOR: {format_amount(wallet.balance_prior, 2)})"
            )

        index = parse_wallet_selection(
            await prompt(f"\nSelect wallet (1-{len(bot.registry)}): "),
            len(bot.registry)
        )
        cycles = parse_cycle_count(await prompt("Enter number of swaps: "))
        bot.start(bot.swap_one(index, cycles), f"Wallet {index + 1} swap")

    elif choice == "5":
        if bot.busy:
            logger.warning("Cannot reload keys while an operation is running")
            return True
        if bot.reload():
            bot.start(bot.show_balances(), "Balance refresh")

    elif choice == "6":
        bot.stop()

    elif choice == "7":
        await shutdown(bot)
        return False

    else:
        logger.error("Invalid choice")

    return True


async def menu_loop(bot: PriorBot):
    """Interactive menu. Operations run in the background."""
    install_stop_handler(bot)

    await bot.registry.refresh_all()

    while True:
        print_menu()

        try:
            choice = await prompt("Enter your choice (1-7): ")
            if not await handle_choice(bot, choice):
                break
        except InputValidationError as e:
            logger.error(str(e))
        except EOFError:
            # Input closed (Ctrl+D or piped stdin); same as option 7
            await shutdown(bot)
            break


async def run_unattended(bot: PriorBot, args) -> int:
    """Run a single subcommand to completion."""
    install_stop_handler(bot)

    if args.command == 'balances':
        await bot.show_balances()
        return 0

    if args.command == 'claim':
        await bot.registry.refresh_all()
        await bot.claim_all()
        return 0

    if args.command == 'swap':
        cycles = parse_cycle_count(args.cycles)
        await bot.registry.refresh_all()

        if args.wallet is None:
            await bot.swap_all(cycles)
            return 0

        index = parse_wallet_selection(args.wallet, len(bot.registry))
        return 0 if await bot.swap_one(index, cycles) else 1

    raise InputValidationError(f"Unknown command: {args.command}")


def build_config(args) -> Config:
    """Load YAML config and environment, then apply command line overrides."""
    config = ConfigManager(Path(args.config)).load_config()

    if args.rpc:
        config.rpc_url = args.rpc
    if args.keys_file:
        config.keys_file = args.keys_file
    if args.log_level:
        config.log_level = args.log_level
    if args.log_file:
        config.log_file = args.log_file

    return config


def init_command(args, config: Config) -> int:
    """Write templates for the config file and keys file if missing."""
    if ConfigManager(Path(args.config)).save_default():
        console.print(f"[green]✓ Wrote default config to {args.config}[/green]")
    else:
        console.print(f"[dim]Config already exists: {args.config}[/dim]")

    if not Path(config.keys_file).exists():
        load_private_keys(config.keys_file)
        console.print(f"[green]✓ Created keys file at {config.keys_file}[/green]")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="PRIOR Testnet Multi-Wallet Bot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Interactive menu
  python prior_cli.py

  # Create bot_config.yaml and private_keys.txt templates
  python prior_cli.py init

  # Show balances of every wallet
  python prior_cli.py balances

  # Claim the faucet for every wallet
  python prior_cli.py claim

  # Five swap cycles for every wallet, or only for wallet 2
  python prior_cli.py swap --cycles 5
  python prior_cli.py swap --cycles 5 --wallet 2
        """
    )

    # Global options
    parser.add_argument('--config', default='./bot_config.yaml', help='Path to bot config')
    parser.add_argument('--rpc', help='RPC URL (overrides RPC_URL)')
    parser.add_argument('--keys-file', help='Private keys file (overrides KEYS_FILE)')
    parser.add_argument(
        '--log-level',
        choices=list(LOG_LEVELS),
        help='Log level (overrides LOG_LEVEL)'
    )
    parser.add_argument('--log-file', help='Also write logs to this file')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('init', help='Write default config and keys file templates')
    subparsers.add_parser('menu', help='Interactive menu (default)')
    subparsers.add_parser('balances', help='Show all wallet balances')
    subparsers.add_parser('claim', help='Claim faucet for all wallets')

    swap_parser = subparsers.add_parser('swap', help='Run swap cycles')
    swap_parser.add_argument('--cycles', required=True, help='Number of swaps per wallet')
    swap_parser.add_argument('--wallet', help='Only this wallet (1-based)')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or 'menu'

    try:
        config = build_config(args)
    except (ValueError, OSError) as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        return 1

    setup_logging(config.log_level, config.log_file)

    if command == 'init':
        return init_command(args, config)

    print_banner(config)

    try:
        bot = PriorBot(config)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    try:
        bot.registry.load()
    except ConfigurationError as e:
        logger.error(str(e))
        logger.error(f"Please add private keys to {config.keys_file} and restart")
        return 1

    try:
        if command == 'menu':
            asyncio.run(menu_loop(bot))
            return 0
        return asyncio.run(run_unattended(bot, args))
    except InputValidationError as e:
        logger.error(str(e))
        return 2
    except KeyboardInterrupt:
        console.print("\n[yellow]Bot stopped by user[/yellow]")
        return 0


if __name__ == '__main__':
    sys.exit(main())
