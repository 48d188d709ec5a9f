"""Nightly: move users whose plan expired back to Free.

Usage (cron):
  python scripts/downgrade_expired_access.py
  python scripts/downgrade_expired_access.py --today 2025-01-31
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from lens_manager.config import load_config
from lens_manager.jobs.downgrade import run_downgrade


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--today", default=None, help="YYYY-MM-DD (default: current UTC date)")
    args = ap.parse_args()

    cfg = load_config()
    n = run_downgrade(cfg.DB_DSN, today=args.today, free_plan_name=cfg.DEFAULT_PLAN_NAME)
    print(f"Downgraded {n} user(s) to {cfg.DEFAULT_PLAN_NAME}")


if __name__ == "__main__":
    main()
