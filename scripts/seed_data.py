#!/usr/bin/env python3
"""
Seed the database with the demo donations.

Creates the schema (with immutability triggers) if it does not exist and
records 8 donations of mixed blood types through BloodBankService, so
each one also lands in the audit chain.

Usage:
    python3 scripts/seed_data.py
    python3 scripts/seed_data.py --database-url sqlite:///demo.db
    python3 scripts/seed_data.py --config path/to/set.yaml --reset
"""

import argparse
import logging
import sys
from datetime import timedelta
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

# (blood type, days before today, donor id, donor name)
DEMO_DONATIONS = [
    ("O-", 8, "111111111", "Demo Donor"),
    ("O+", 7, "222222222", "Demo Donor II"),
    ("A+", 6, "333333333", "David Levi"),
    ("A-", 6, "444444444", "Sara Cohen"),
    ("B+", 5, "555555555", "Yoav Bar"),
    ("AB+", 4, "666666666", "Naama Barak"),
    ("O-", 3, "777777777", "Ron Amit"),
    ("B-", 3, "888888888", "Noa Navon"),
]


def _parse_args(argv):
    parser = argparse.ArgumentParser(description="Seed the blood bank with demo donations.")
    parser.add_argument("--config", help="YAML configuration set to load")
    parser.add_argument("--database-url", help="Override database.url")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Drop all tables before seeding (destroys the audit chain)",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)
    logging.disable(logging.CRITICAL)

    from dataclasses import replace

    from blood_config import get_active_config
    from blood_kernel.db.engine import drop_tables, init_engine_from_url, reset_engine
    from blood_kernel.domain.clock import SystemClock
    from blood_kernel.exceptions import BloodKernelError
    from blood_services import SYSTEM_CONTEXT, bootstrap

    config = get_active_config(args.config)
    if args.database_url:
        config = replace(config, database=replace(config.database, url=args.database_url))

    print()
    print(f"  [1/3] Connecting to {config.database.url} ...")
    if args.reset:
        init_engine_from_url(config.database.url)
        drop_tables()
        reset_engine()
        print("        Dropped existing tables.")

    print("  [2/3] Creating schema and seeding 8 donations...")
    clock = SystemClock()
    bank = bootstrap(config, clock=clock)
    today = clock.today()

    seeded = []
    for blood_type, days_ago, donor_id, donor_name in DEMO_DONATIONS:
        try:
            unit = bank.add_donation(
                blood_type,
                today - timedelta(days=days_ago),
                donor_id,
                donor_name,
                context=SYSTEM_CONTEXT,
            )
        except BloodKernelError as exc:
            print(f"  ERROR: {exc}", file=sys.stderr)
            return 1
        seeded.append(unit)
        print(f"         [OK] {unit.blood_type.compact:<4} {unit.donation_date}  {unit.id}")

    print("  [3/3] Verifying audit chain...")
    result = bank.verify_audit_chain()
    print(f"        {result.checked} entries, valid={result.valid}")

    print()
    print(f"  Done. {len(seeded)} units available.")
    print()
    return 0 if result.valid else 2


if __name__ == "__main__":
    sys.exit(main())
