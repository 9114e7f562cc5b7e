"""Allow ``python -m ctsync``."""

from ctsync.cli.app import run


if __name__ == "__main__":
    run()
