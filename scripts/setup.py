#!/usr/bin/env python3
"""Bootstrap a local avcatalog checkout: directories, package, .env and database."""

import shutil
import subprocess
import sys
from pathlib import Path

DATA_DIRS = ["data/db", "data/logs", "data/sitemaps"]


def main():
    print("=" * 80)
    print("avcatalog - Setup")
    print("=" * 80)

    if sys.version_info < (3, 10):
        print("Error: Python 3.10 or higher is required")
        sys.exit(1)
    print("\n✓ Python version check passed")

    print("\nCreating data directories...")
    for dir_path in DATA_DIRS:
        Path(dir_path).mkdir(parents=True, exist_ok=True)
        print(f"  ✓ {dir_path}")

    print("\nInstalling avcatalog (editable, with test extras)...")
    try:
        subprocess.run([sys.executable, "-m", "pip", "install", "-e", ".[test]"], check=True)
        print("  ✓ Package installed")
    except subprocess.CalledProcessError:
        print("  ✗ pip install failed")
        sys.exit(1)

    env_file = Path(".env")
    if env_file.exists():
        print("\n✓ .env file exists")
    elif Path(".env.example").exists():
        shutil.copy(".env.example", env_file)
        print("\n✓ Created .env from .env.example - add your DUGA, SOKMIL and b10f credentials")
    else:
        print("\n⚠ .env.example not found; ASP credentials must come from the environment")

    print("\nCreating database tables...")
    try:
        from avcatalog.storage.database import Database
        from avcatalog.utils.config import get_config

        config = get_config()
        Database(config.database.url)
        print(f"  ✓ {config.database.url}")
    except Exception as e:
        print(f"  ✗ Failed to initialize database: {e}")
        sys.exit(1)

    print("\n" + "=" * 80)
    print("Setup completed")
    print("=" * 80)
    print("\nNext steps:")
    print("1. python -m avcatalog crawl all     # first import")
    print("2. python -m avcatalog api           # JSON API on the configured port")
    print("3. python -m avcatalog scheduler     # recurring crawls, backfills and sitemaps")


if __name__ == "__main__":
    main()
