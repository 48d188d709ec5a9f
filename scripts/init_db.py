import sys
from pathlib import Path

# Ensure project root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from lens_manager.config import load_config
from lens_manager.db import connect, init_db
from lens_manager.plans import list_access_levels


def main() -> None:
    cfg = load_config()
    init_db(cfg.DB_DSN)
    with connect(cfg.DB_DSN) as conn:
        levels = list_access_levels(conn)

    print(f"DB initialized: {cfg.DB_DSN}")
    for lvl in levels:
        print(
            f"  plan {lvl['access_level_id']}: {lvl['level_name']} "
            f"clients={lvl['max_clients']} bookings={lvl['max_bookings']} storage_gb={lvl['max_storage_gb']}"
        )


if __name__ == "__main__":
    main()
