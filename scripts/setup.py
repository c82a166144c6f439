#!/usr/bin/env python3
"""Setup script for StockDesk."""

import shutil
import subprocess
import sys
from pathlib import Path


def main():
    """Run setup tasks."""
    print("=" * 80)
    print("StockDesk - Setup")
    print("=" * 80)

    if sys.version_info < (3, 10):
        print("Error: Python 3.10 or higher is required")
        sys.exit(1)

    print("\n✓ Python version check passed")

    print("\n Creating directories...")
    for dir_path in ["data/db", "data/logs", "data/exports"]:
        Path(dir_path).mkdir(parents=True, exist_ok=True)
        print(f"  ✓ Created {dir_path}")

    print("\n📦 Installing dependencies...")
    try:
        subprocess.run(
            [sys.executable, "-m", "pip", "install", "-e", ".[test]"],
            check=True,
        )
        print("  ✓ Dependencies installed")
    except subprocess.CalledProcessError:
        print("  ✗ Failed to install dependencies")
        sys.exit(1)

    env_file = Path(".env")
    if not env_file.exists():
        print("\n⚠ No .env file found. Creating from .env.example...")
        if Path(".env.example").exists():
            shutil.copy(".env.example", env_file)
            print("  ✓ Created .env file - adjust it if needed")
        else:
            print("  ✗ .env.example not found")
    else:
        print("\n✓ .env file exists")

    print("\n🗄 Initializing database...")
    # Import here to ensure dependencies are installed
    from stockdesk.app import DesktopApp

    desktop_app = DesktopApp()
    try:
        if not desktop_app.startup():
            print(f"  ✗ Failed to initialize database: {desktop_app.db_error}")
            sys.exit(1)
        print("  ✓ Database initialized")
    finally:
        desktop_app.shutdown()

    print("\n" + "=" * 80)
    print("✅ Setup completed successfully!")
    print("=" * 80)
    print("\nNext steps:")
    print("1. Run 'python -m stockdesk api' to start the API for the front end")
    print("2. Run 'python -m stockdesk template' to get a CSV import template")
    print("3. Run 'python -m stockdesk import products.csv' to load products")


if __name__ == "__main__":
    main()
