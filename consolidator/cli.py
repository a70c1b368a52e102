# consolidator/cli.py

import argparse
import asyncio
import importlib
import logging
import os
import sys
import time
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from consolidator.consolidation.consolidator import (
    ACTION_BURN,
    ACTION_CLOSE,
    ACTION_SWEEP,
    ACTION_TRANSFER,
    SELECT_EMPTY,
    SELECT_TOKENS,
    ConsolidationPreview,
    WalletConsolidator,
)
from consolidator.consolidation.base import WalletEntry
from consolidator.core.client import SolanaClient
from consolidator.core.endpoints import EndpointSelector
from consolidator.core.exceptions import ConsolidatorException
from consolidator.core.wallet import ConfirmingSigner, KeypairSigner, console_prompt
from consolidator.discovery.accounts import AccountDiscovery, partition
from consolidator.discovery.metadata import MetadataResolver
from consolidator.state.balance_cache import BalanceCache, format_last_checked
from consolidator.state.preferences import DestinationPreference
from consolidator.utils.amounts import lamports_to_sol_str
from consolidator.utils.logger import get_logger, setup_logging
from consolidator.utils.notifier import Notification, Notifier
from consolidator.core.constants import RENT_EXEMPT_TOKEN_ACCOUNT_LAMPORTS

logger = get_logger(__name__)

DEFAULT_CONFIG_MODULE = "consolidator.config"

COMMAND_ACTIONS = {
    "close-empty": ACTION_CLOSE,
    "transfer": ACTION_TRANSFER,
    "burn": ACTION_BURN,
    "sweep-sol": ACTION_SWEEP,
}


def load_config(config_path: str) -> Dict[str, Any]:
    """Load the configuration module and apply typed defaults."""
    logger.info(f"Attempting to load configuration from: {config_path}")

    # Normalize to a Python import path
    module_path = config_path.replace("/", ".").replace("\\", ".")
    if module_path.endswith(".py"):
        module_path = module_path[:-3]

    try:
        cfg_mod = importlib.import_module(module_path)
    except ModuleNotFoundError:
        logger.critical(f"FATAL: Config module not found: '{module_path}'.")
        raise

    config: Dict[str, Any] = {}

    # 1) Connection and wallet; the key is checked only by commands that sign
    endpoints = getattr(cfg_mod, "SOLANA_RPC_ENDPOINTS", None) or os.getenv("SOLANA_RPC_ENDPOINTS")
    if not endpoints:
        raise ValueError("Missing required config var: SOLANA_RPC_ENDPOINTS")
    if isinstance(endpoints, str):
        endpoints = [url.strip() for url in endpoints.split(",") if url.strip()]
    config["SOLANA_RPC_ENDPOINTS"] = list(endpoints)
    for var in ("SOLANA_WSS_ENDPOINT", "SOLANA_PRIVATE_KEY", "NOTIFICATION_LOG_PATH"):
        config[var] = getattr(cfg_mod, var, None) or os.getenv(var)

    # 2) All other optional settings
    optional_defaults = {
        "CONFIRM_TIMEOUT_SECONDS": 30.0,
        "CONFIRM_POLL_INTERVAL_SECONDS": 1.0,
        "MAX_SEND_RETRIES": 3,
        "SOL_RESERVE_LAMPORTS": 10_000_000,
        "REFRESH_COOLDOWN_SECONDS": 5.0,
        "REFRESH_DEBOUNCE_SECONDS": 1.0,
        "REFRESH_INTERVAL_SECONDS": 10.0,
        "METADATA_FETCH_TIMEOUT_SECONDS": 10.0,
        "DESTINATION_PREFERENCE_PATH": os.path.join(os.path.expanduser("~"), ".consolidator", "preferences.json"),
        "EXPLORER_TX_URL": "https://solscan.io/tx/{signature}",
        "SIMULATE_BEFORE_SUBMIT": False,
    }

    for var, default in optional_defaults.items():
        raw = getattr(cfg_mod, var, os.getenv(var))
        if raw is None:
            config[var] = default
        elif isinstance(default, bool) and isinstance(raw, str):
            config[var] = raw.strip().lower() in ("1", "true", "yes", "on")
        else:
            try:
                config[var] = type(default)(raw)
            except (TypeError, ValueError):
                logger.warning(f"Config warning: invalid type for {var}, using default {default}")
                config[var] = default

    logger.info("Configuration loaded successfully.")
    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Solana token account consolidator")
    parser.add_argument("--config", default=DEFAULT_CONFIG_MODULE,
                        help=f"Python module path (default: {DEFAULT_CONFIG_MODULE})")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING...)")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="List token accounts and balances")
    scan.add_argument("--owner", help="Wallet to scan (default: the configured wallet)")

    for command, help_text in (
            ("close-empty", "Close empty token accounts and reclaim rent"),
            ("transfer", "Transfer token balances to the destination wallet"),
            ("burn", "Burn dust balances and close the accounts"),
    ):
        action = sub.add_parser(command, help=help_text)
        action.add_argument("--all", action="store_true", help="Select every eligible account")
        action.add_argument("--account", action="append", default=[], metavar="ADDRESS",
                            help="Token account to include (repeatable)")
        action.add_argument("--simulate", action="store_true", help="Dry-run and print the plan, do not submit")
        action.add_argument("--yes", action="store_true", help="Do not ask before signing")

    sweep = sub.add_parser("sweep-sol", help="Send the SOL balance above the reserve to the destination")
    sweep.add_argument("--simulate", action="store_true", help="Dry-run and print the plan, do not submit")
    sweep.add_argument("--yes", action="store_true", help="Do not ask before signing")

    destination = sub.add_parser("destination", help="Show or change the saved destination wallet")
    dest_sub = destination.add_subparsers(dest="destination_command", required=True)
    dest_sub.add_parser("show")
    dest_set = dest_sub.add_parser("set")
    dest_set.add_argument("address")
    dest_sub.add_parser("clear")
    return parser


def print_notification(notification: Notification) -> None:
    print(f"[{notification.variant}] {notification.title}: {notification.description}")
    if notification.link:
        print(f"    {notification.link}")


def print_wallet(entry: WalletEntry) -> None:
    print(f"Wallet {entry.owner}")
    print(f"  SOL: {lamports_to_sol_str(entry.sol_lamports)}")
    with_balance, empty = partition(entry.tokens)
    print(f"  Token accounts: {len(entry.tokens)} ({len(with_balance)} with balance, {len(empty)} empty)")
    for token in with_balance + empty:
        name = token.metadata.name if token.metadata and token.metadata.name else "Unknown Token"
        print(f"    {token.address}  {token.ui_amount:>20} {token.display_symbol:<10} {name}")
    if empty:
        rent = lamports_to_sol_str(len(empty) * RENT_EXEMPT_TOKEN_ACCOUNT_LAMPORTS)
        print(f"  Closing the empty accounts reclaims ~{rent} SOL")
    if entry.last_refreshed:
        print(f"  Last checked: {format_last_checked(entry.last_refreshed, time.time())}")


def print_preview(preview: ConsolidationPreview) -> None:
    if not preview.planned:
        print("Nothing to do.")
        return
    print(f"Planned instructions ({len(preview.planned)}):")
    for index, step in enumerate(preview.planned):
        print(f"  [{index}] {step.describe()}")
    if preview.estimated_rent_lamports:
        print(f"Estimated rent reclaimed: {lamports_to_sol_str(preview.estimated_rent_lamports)} SOL")
    simulation = preview.simulation
    if simulation is None:
        return
    if not simulation.success:
        print(f"Simulation FAILED: {simulation.error}")
        return
    print(f"Simulation succeeded ({simulation.units_consumed} compute units). Balance changes:")
    for delta in simulation.balance_changes:
        if not delta.change and not delta.token_changes:
            continue
        sign = "+" if delta.change >= 0 else "-"
        print(f"  {delta.address}: {sign}{lamports_to_sol_str(abs(delta.change))} SOL")
        for mint, change in delta.token_changes.items():
            print(f"      {mint}: {change:+d}")


def _apply_selection(consolidator: WalletConsolidator, command: str, args: argparse.Namespace) -> None:
    if command == "close-empty":
        if args.all:
            consolidator.select_all(SELECT_EMPTY)
        for address in args.account:
            consolidator.toggle_close(address)
    elif command == "transfer":
        if args.all:
            consolidator.select_all(SELECT_TOKENS)
        for address in args.account:
            consolidator.toggle_transfer(address)
    elif command == "burn":
        addresses: List[str] = [a.address for a in consolidator.accounts()] if args.all else args.account
        for address in addresses:
            consolidator.toggle_burn(address)


def handle_destination(cfg: Dict[str, Any], args: argparse.Namespace) -> int:
    preference = DestinationPreference(cfg["DESTINATION_PREFERENCE_PATH"])
    preference.load()
    if args.destination_command == "show":
        print(preference.value or "No destination saved; the connected wallet is used.")
    elif args.destination_command == "set":
        try:
            preference.set(args.address)
        except ConsolidatorException as e:
            print(f"Invalid address: {e}")
            return 1
        print(f"Destination wallet set to {preference.value}")
    else:
        preference.clear()
        print("Destination wallet cleared.")
    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()  # early .env load

    args = build_parser().parse_args(argv)
    setup_logging(getattr(logging, str(args.log_level).upper(), logging.INFO))

    try:
        cfg = load_config(args.config)
    except Exception as e:
        logger.critical(f"Config load failed: {e}")
        return 1

    if args.command == "destination":
        return handle_destination(cfg, args)
    if args.command in ("close-empty", "transfer", "burn") and not (args.all or args.account):
        print("Select accounts with --all or --account ADDRESS.")
        return 2

    signer = None
    if args.command != "scan" or not args.owner:
        if not cfg["SOLANA_PRIVATE_KEY"]:
            logger.critical("SOLANA_PRIVATE_KEY is not configured.")
            return 1
        try:
            signer = KeypairSigner.from_base58(cfg["SOLANA_PRIVATE_KEY"])
        except ValueError as e:
            logger.critical(f"Signer initialization failed: {e}")
            return 1

    selector = EndpointSelector(cfg["SOLANA_RPC_ENDPOINTS"])
    client: Optional[SolanaClient] = None
    resolver: Optional[MetadataResolver] = None
    try:
        client = await selector.connect()
        resolver = MetadataResolver(client, timeout_seconds=cfg["METADATA_FETCH_TIMEOUT_SECONDS"])
        discovery = AccountDiscovery(client, resolver)

        if args.command == "scan":
            entry = await discovery.scan(args.owner or signer.address)
            print_wallet(entry)
            return 0

        if not args.yes and not args.simulate:
            signer = ConfirmingSigner(signer, console_prompt)
        cache = BalanceCache(
            discovery,
            cooldown_seconds=cfg["REFRESH_COOLDOWN_SECONDS"],
            debounce_seconds=cfg["REFRESH_DEBOUNCE_SECONDS"],
            refresh_interval_seconds=cfg["REFRESH_INTERVAL_SECONDS"],
        )
        notifier = Notifier(
            log_to_file=bool(cfg["NOTIFICATION_LOG_PATH"]),
            filepath=cfg["NOTIFICATION_LOG_PATH"] or "notifications.log",
            sink=print_notification,
        )
        preference = DestinationPreference(cfg["DESTINATION_PREFERENCE_PATH"])
        preference.load()
        consolidator = WalletConsolidator(client, signer, discovery, cache, notifier, cfg, preference)

        if await consolidator.load() is None:
            return 1
        action = COMMAND_ACTIONS[args.command]
        _apply_selection(consolidator, args.command, args)
        print(f"Destination: {consolidator.destination()}")

        if args.simulate:
            print_preview(await consolidator.preview(action))
            return 0

        attempt = await getattr(consolidator, {
            ACTION_CLOSE: "close_empty_accounts",
            ACTION_TRANSFER: "transfer_selected_tokens",
            ACTION_BURN: "burn_dust_and_claim",
            ACTION_SWEEP: "sweep_sol",
        }[action])()
        return 0 if attempt is not None and attempt.success else 1
    except ConsolidatorException as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    except asyncio.CancelledError:
        logger.info("Cancelled.")
        return 130
    finally:
        logger.info("Cleaning up…")
        if resolver is not None:
            await resolver.close()
        if client is not None:
            await client.close()


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
