"""CLI to write a default config.yaml."""

from __future__ import annotations

import argparse
from pathlib import Path

from src.config.settings import create_default_config


def main() -> None:
    parser = argparse.ArgumentParser(description="Write a default cockpit config file.")
    parser.add_argument("--path", default="config.yaml", help="Where to write the config")
    parser.add_argument("--force", action="store_true", help="Overwrite an existing file")
    args = parser.parse_args()

    path = Path(args.path)
    if path.exists() and not args.force:
        print(f"{path} already exists; pass --force to overwrite.")
        raise SystemExit(1)
    create_default_config(path)
    print(f"Wrote default config to {path}")


if __name__ == "__main__":
    main()
