"""
Main application controller for Folder Mirror.

Ties together configuration, logging and the watch coordinator, and
keeps the process alive until the operator presses Enter or sends
SIGINT / SIGTERM.
"""

import logging
import logging.handlers
import signal
import sys
import threading
from pathlib import Path

from folder_mirror import __app_name__, __version__
from folder_mirror.config import Config, ConfigError, get_log_path
from folder_mirror.watcher import WatchCoordinator

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1

_HEALTH_CHECK_SECONDS = 1.0
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class App:
    """Central orchestrator."""

    def __init__(self, config_path: Path | None = None, log_path: Path | None = None):
        self.config = Config(config_path)
        self._log_path = log_path
        self.coordinator: WatchCoordinator | None = None
        self._stop = threading.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        """Load config, start watching and block until stopped.

        Returns the process exit code.
        """
        if not self.config.exists():
            return self._bootstrap_config()

        try:
            self.config.load()
        except ConfigError as exc:
            print(f"Failed to load config: {exc}", file=sys.stderr)
            return EXIT_CONFIG_ERROR

        self._setup_logging()
        logger.info("%s %s starting.", __app_name__, __version__)

        self.coordinator = WatchCoordinator(self.config.definitions)
        self.coordinator.start()
        if not self.coordinator.sessions:
            logger.warning("No valid watch entries; nothing is being watched.")

        self._install_signal_handlers()
        self._start_stdin_listener()
        print("Press [enter] to exit.")

        try:
            while not self._stop.wait(_HEALTH_CHECK_SECONDS):
                self.coordinator.check_health()
        finally:
            self.shutdown()
        return EXIT_OK

    def request_stop(self) -> None:
        """Ask the main loop to exit (thread- and signal-safe)."""
        self._stop.set()

    def shutdown(self) -> None:
        """Stop all watch sessions."""
        logger.info("Shutting down…")
        if self.coordinator:
            self.coordinator.stop()
            self.coordinator = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _bootstrap_config(self) -> int:
        """Write the example config and tell the operator to edit it."""
        print("Config file not found. Creating default config.json...")
        try:
            self.config.write_default()
        except ConfigError as exc:
            print(str(exc), file=sys.stderr)
            return EXIT_CONFIG_ERROR
        print(f"Please edit {self.config.path} with your actual paths and restart the app.")
        return EXIT_OK

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return

        def _handler(sig, frame):
            self.request_stop()

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)

    def _start_stdin_listener(self) -> None:
        """Stop when a line arrives on stdin.

        EOF (no console attached) leaves the app running until a signal.
        """

        def _wait_for_enter():
            try:
                line = sys.stdin.readline()
            except (OSError, ValueError, AttributeError):
                return
            if line:
                self.request_stop()

        threading.Thread(target=_wait_for_enter, daemon=True, name="StdinListener").start()

    def _setup_logging(self) -> None:
        """Send log records to the rotating log file and to the console."""
        cfg = self.config
        level = getattr(logging, cfg.log_level.upper(), logging.INFO)
        formatter = logging.Formatter(LOG_FORMAT)

        handlers: list[logging.Handler] = [
            logging.handlers.RotatingFileHandler(
                str(self._log_path or get_log_path()),
                maxBytes=cfg.max_log_size_mb * 1024 * 1024,
                backupCount=cfg.log_backup_count,
                encoding="utf-8",
            ),
            logging.StreamHandler(sys.stderr),
        ]
        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        for handler in handlers:
            handler.setLevel(level)
            handler.setFormatter(formatter)
            root_logger.addHandler(handler)
