"""Entry point for Folder Mirror.

Usage:
    python -m folder_mirror        Load config.json and start mirroring
"""

import sys


def main() -> None:
    """Run the mirroring app and exit with its status code."""
    from folder_mirror.app import App

    app = App()
    sys.exit(app.run())


if __name__ == "__main__":
    main()
