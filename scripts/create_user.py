"""Create a user.

Usage:
  python scripts/create_user.py --email alice@example.com --password '...' --name 'Alice' --role photographer

Without --plan the user gets the default (Free) plan.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from lens_manager.auth.crud import create_user
from lens_manager.config import load_config
from lens_manager.db import connect, init_db
from lens_manager.plans import get_access_level_by_name


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--email", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--name", default="")
    ap.add_argument("--role", choices=["photographer", "admin"], default="photographer")
    ap.add_argument("--plan", default=None, help="access level name, e.g. Pro")
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    with connect(cfg.DB_DSN) as conn:
        access_level_id = None
        if args.plan:
            level = get_access_level_by_name(conn, args.plan)
            if level is None:
                raise SystemExit(f"Unknown plan: {args.plan}")
            access_level_id = int(level["access_level_id"])
        u = create_user(
            conn,
            email=args.email,
            password=args.password,
            full_name=args.name,
            role=args.role,
            access_level_id=access_level_id,
            default_plan_name=cfg.DEFAULT_PLAN_NAME,
            currency_type=cfg.DEFAULT_CURRENCY,
        )

    print("Created user:")
    print(u)


if __name__ == "__main__":
    main()
