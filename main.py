"""
Rent Reclaimer - CLI Entrypoint
===============================
Usage:
    python main.py run                  # polling loop (interval from env)
    python main.py once --live          # single cycle, real transactions
    python main.py scan --max-items 500 # discovery only
    python main.py stats
    python main.py whitelist add <ADDRESS> --note "treasury ATA"

All reclaim commands default to dry-run unless --live is given
(or RECLAIM_DRY_RUN=false).
"""

import argparse
import asyncio
import sys

from config.settings import Settings
from src.modules.rent_reclaimer.config import ConfigurationError
from src.modules.rent_reclaimer.service import RentReclaimerService
from src.modules.rent_reclaimer.store import RentStore
from src.shared.system.logging import Logger


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rent-reclaimer",
        description="Discover and reclaim rent from operator-sponsored Solana accounts",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run the polling loop")
    run_parser.add_argument("--interval", type=float, default=None, help="Seconds between cycles")
    run_parser.add_argument("--live", action="store_true", help="Submit real transactions")
    run_parser.add_argument("--no-claim", action="store_true", help="Discovery only")

    once_parser = subparsers.add_parser("once", help="Run a single cycle")
    once_parser.add_argument("--live", action="store_true", help="Submit real transactions")
    once_parser.add_argument("--no-claim", action="store_true", help="Discovery only")

    scan_parser = subparsers.add_parser("scan", help="Discovery only, wait for sync")
    scan_parser.add_argument("--max-items", type=int, default=None, help="Cap transactions processed")
    scan_parser.add_argument("--force-verify", action="store_true", help="Re-verify all active accounts")

    subparsers.add_parser("stats", help="Show stored stats per operator")

    wl_parser = subparsers.add_parser("whitelist", help="Manage the reclaim whitelist")
    wl_parser.add_argument("action", choices=["add", "remove", "list"])
    wl_parser.add_argument("address", nargs="?")
    wl_parser.add_argument("--note", default=None)

    return parser


def _build_service(args) -> RentReclaimerService:
    service = RentReclaimerService.from_settings(claim=not getattr(args, "no_claim", False))
    if getattr(args, "live", False):
        service.config.DRY_RUN = False
    if service.config.DRY_RUN:
        Logger.info("🧪 DRY RUN - no transactions will be submitted")
    return service


async def cmd_run(args):
    service = _build_service(args)
    await service.run_forever(args.interval)


async def cmd_once(args):
    service = _build_service(args)
    try:
        reports = await service.run_cycle()
    finally:
        await service.close()
    for operator, report in reports.items():
        summary = report.get("reclaim")
        if summary is not None:
            Logger.info(f"{operator[:8]}... reclaimed {summary.success} ({summary.sol:.6f} SOL), failed {summary.failed}")


async def cmd_scan(args):
    from src.modules.rent_reclaimer.discoverer import Discoverer

    service = RentReclaimerService.from_settings(claim=False)
    try:
        for keypair in service.operators:
            discoverer = Discoverer(str(keypair.pubkey()), service.ledger, service.store, service.config)
            result = await discoverer.scan(wait_for_sync=True, force_verify=args.force_verify,
                                           max_items=args.max_items)
            _print_stats(str(keypair.pubkey()), result.stats)
    finally:
        await service.close()


def cmd_stats(args):
    store = RentStore(Settings.RENT_DB_PATH, Settings.WHITELIST_PATH)
    glob = store.get_global_stats()
    print(f"Operators: {glob['operators']}  Accounts: {glob['total_accounts']}  "
          f"Reclaimable: {glob['reclaimable_lamports'] / 1e9:.4f} SOL  "
          f"Reclaimed: {glob['reclaimed_lamports'] / 1e9:.4f} SOL")


def cmd_whitelist(args):
    store = RentStore(Settings.RENT_DB_PATH, Settings.WHITELIST_PATH)
    if args.action == "list":
        for address in store.get_whitelist():
            print(address)
        return
    if not args.address:
        Logger.error("❌ Address required")
        sys.exit(2)
    if args.action == "add":
        store.add_to_whitelist(args.address, args.note)
    elif not store.remove_from_whitelist(args.address):
        Logger.warning(f"⚠️ {args.address} was not whitelisted")


def _print_stats(operator: str, stats: dict):
    print("\n" + "=" * 60)
    print(f"OPERATOR {operator}")
    print("=" * 60)
    print(f"Total Accounts:   {stats['total_accounts']}")
    print(f"Active:           {stats['active_accounts']}")
    print(f"Reclaimable:      {stats['reclaimable_accounts']} ({stats['reclaimable_lamports'] / 1e9:.4f} SOL)")
    print(f"Locked:           {stats['locked_accounts']}")
    print(f"Closed:           {stats['closed_accounts']}")
    print(f"Reclaimed:        {stats['reclaimed_accounts']} ({stats['reclaimed_lamports'] / 1e9:.4f} SOL)")
    print(f"Errors:           {stats['error_accounts']}")
    print("=" * 60)


def main():
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    try:
        if args.command == "run":
            asyncio.run(cmd_run(args))
        elif args.command == "once":
            asyncio.run(cmd_once(args))
        elif args.command == "scan":
            asyncio.run(cmd_scan(args))
        elif args.command == "stats":
            cmd_stats(args)
        elif args.command == "whitelist":
            cmd_whitelist(args)
    except ConfigurationError as e:
        Logger.critical(f"Configuration error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        Logger.info("Stopped by user")


if __name__ == "__main__":
    main()
