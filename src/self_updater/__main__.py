"""Entry point for ``python -m self_updater``."""

from self_updater.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
