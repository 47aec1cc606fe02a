"""
Delete the local CyberTask database so the next start (or seed) is fresh.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cybertask.infra.config import get_settings


def main():
    settings = get_settings()
    url = settings.get_db_url()
    if not url.startswith("sqlite"):
        print(f"Refusing to reset non-SQLite database: {url}")
        return 1

    db_path = Path(url.split("///")[-1])
    if not db_path.exists():
        print(f"No existing database found at: {db_path}")
        return 0

    print(f"Removing existing database at: {db_path}")
    try:
        db_path.unlink()
    except PermissionError:
        print("ERROR: Could not remove database. It might be in use.")
        return 1
    print("Database removed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
