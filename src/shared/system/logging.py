"""
Centralized Logger with Rich Console
====================================
Single logging facade for the discovery, verification and reclaim pipeline.

Usage:
    from src.shared.system.logging import Logger

    Logger.info("[DISCOVERY] Page processed")
    Logger.success("[RECLAIM] Batch confirmed")
    Logger.warning("Something concerning")
    Logger.error("Something broke")
    Logger.section("Polling Cycle")

A leading [SOURCE] tag picks the console column and icon. Console output
honours Settings.SILENT_MODE; the per-run file log always receives everything.
"""

import os
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Tuple

from rich.console import Console
from rich.text import Text

LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(__file__)))), "logs")


def _create_file_logger() -> logging.Logger:
    """One rotating file per process run under logs/."""
    file_logger = logging.getLogger("RentReclaimer")
    if file_logger.handlers:
        return file_logger

    os.makedirs(LOG_DIR, exist_ok=True)
    run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    handler = RotatingFileHandler(
        os.path.join(LOG_DIR, f"rent_reclaimer_{run_id}.log"),
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
    file_logger.addHandler(handler)
    file_logger.setLevel(logging.DEBUG)
    file_logger.propagate = False
    return file_logger


file_logger = _create_file_logger()
_console = Console()

# Icons per [SOURCE] tag
SOURCE_ICONS = {
    "SYSTEM": "🛸",
    "DISCOVERY": "🔍",
    "VERIFIER": "🧪",
    "RECLAIM": "♻️",
    "LEDGER": "📡",
    "STORE": "📦",
    "NOTIFY": "📣",
    "WEBHOOK": "🪝",
    "TREASURY": "🏦",
    "SERVICE": "⏱️",
}

# Console style and file level per logger level
LEVELS = {
    "DEBUG": ("dim", logging.DEBUG),
    "INFO": ("cyan", logging.INFO),
    "SUCCESS": ("green bold", logging.INFO),
    "WARNING": ("yellow", logging.WARNING),
    "ERROR": ("red bold", logging.ERROR),
    "CRITICAL": ("red bold reverse", logging.CRITICAL),
}


class Logger:
    """
    Static logging facade.

    Console lines read `HH:MM:SS.mmm | LEVEL | SOURCE | icon message`.
    DEBUG goes to the file only.
    """

    _silent_mode = False

    @staticmethod
    def _timestamp() -> str:
        now = datetime.now()
        return f"{now.strftime('%H:%M:%S')}.{now.microsecond // 1000:03d}"

    @staticmethod
    def _parse_source(message: str) -> Tuple[str, str]:
        """Split a leading [SOURCE] tag off the message."""
        stripped = message.strip()
        if stripped.startswith("[") and "]" in stripped:
            tag_end = stripped.index("]")
            source = stripped[1:tag_end].upper()
            if 0 < len(source) < 15:
                return source, stripped[tag_end + 1:].strip()
        return "SYSTEM", message

    @staticmethod
    def _console_enabled() -> bool:
        if Logger._silent_mode:
            return False
        from config.settings import Settings
        return not getattr(Settings, "SILENT_MODE", False)

    @staticmethod
    def _emit(level: str, message: str, prefix: str = "") -> None:
        source, msg = Logger._parse_source(message)
        if prefix:
            msg = f"{prefix} {msg}"
        style, file_level = LEVELS[level]

        file_logger.log(file_level, f"[{source}] {msg}")

        if level == "DEBUG" or not Logger._console_enabled():
            return
        icon = SOURCE_ICONS.get(source, "")
        line = Text()
        line.append(f"{Logger._timestamp()} ", style="dim")
        line.append(f"| {level[:8].ljust(8)} ", style=style)
        line.append(f"| {source[:10].ljust(10)} | ", style="dim")
        line.append(f"{icon} {msg}" if icon else msg)
        _console.print(line)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @staticmethod
    def info(message: str, icon: str = "") -> None:
        Logger._emit("INFO", message, icon)

    @staticmethod
    def success(message: str) -> None:
        Logger._emit("SUCCESS", message, "✅")

    @staticmethod
    def warning(message: str) -> None:
        Logger._emit("WARNING", message)

    @staticmethod
    def error(message: str) -> None:
        Logger._emit("ERROR", message)

    @staticmethod
    def debug(message: str) -> None:
        Logger._emit("DEBUG", message)

    @staticmethod
    def critical(message: str) -> None:
        Logger._emit("CRITICAL", message, "🛑")

    @staticmethod
    def section(title: str) -> None:
        """Rule across the console, marker line in the file."""
        file_logger.info(f"[SYSTEM] === {title} ===")
        if Logger._console_enabled():
            _console.print()
            _console.rule(f"[bold magenta]{title}[/]", style="dim")

    @staticmethod
    def set_silent(silent: bool) -> None:
        Logger._silent_mode = silent
