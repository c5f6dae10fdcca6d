"""Console logging, error taxonomy, backups and the subprocess seam."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence, Union

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
BACKUP_STAMP = "%Y%m%d_%H%M%S"

PathLike = Union[str, Path]


class RepairError(Exception):
    """Base class for failures that end a repair command with exit 1."""

    category = "repair failed"


class PreconditionError(RepairError):
    category = "missing precondition"


class ToolError(RepairError):
    category = "external tool failed"


class PostconditionError(RepairError):
    category = "fix applied but validation still fails"


class _ConsoleHandler(logging.StreamHandler):
    # Resolve stdout per record so redirected streams are honoured.
    def emit(self, record: logging.LogRecord) -> None:
        self.stream = sys.stdout
        super().emit(record)


def configure_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    logger = logging.getLogger("ios_repair")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    if not any(isinstance(h, _ConsoleHandler) for h in logger.handlers):
        handler = _ConsoleHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATEFMT))
        logger.addHandler(handler)
    return logger


def log_success(logger: logging.Logger, msg: str, *args) -> None:
    logger.log(SUCCESS, msg, *args)


def report_failure(logger: logging.Logger, exc: RepairError) -> int:
    logger.error("❌ %s: %s", exc.category, exc)
    return 1


def backup_file(path: PathLike, *, now: Optional[datetime] = None) -> Path:
    """Copy ``path`` to ``<path>.backup.<timestamp>`` and return the copy.

    An existing backup with the same timestamp is never overwritten; a numeric
    suffix is appended instead.
    """
    source = Path(path)
    if not source.is_file():
        raise PreconditionError(f"cannot back up missing file: {source}")
    stamp = (now or datetime.now()).strftime(BACKUP_STAMP)
    target = source.with_name(f"{source.name}.backup.{stamp}")
    counter = 1
    while target.exists():
        target = source.with_name(f"{source.name}.backup.{stamp}.{counter}")
        counter += 1
    shutil.copy2(source, target)
    return target


def replace_with_backup(path: PathLike, content: Union[str, bytes]) -> Optional[Path]:
    """Write ``content`` to ``path`` after backing it up.

    Returns the backup path, or ``None`` when the file already holds
    ``content`` and nothing was written.
    """
    target = Path(path)
    data = content.encode("utf-8") if isinstance(content, str) else content
    if target.is_file() and target.read_bytes() == data:
        return None
    backup = backup_file(target) if target.is_file() else None
    target.write_bytes(data)
    return backup


def timestamped_backups(path: PathLike) -> list[Path]:
    """Timestamped backups of ``path``, newest first."""
    source = Path(path)
    prefix = f"{source.name}.backup."
    if not source.parent.is_dir():
        return []
    found = [p for p in source.parent.iterdir() if p.is_file() and p.name.startswith(prefix)]
    return sorted(found, key=lambda p: p.name[len(prefix):], reverse=True)


@dataclass(frozen=True)
class ToolResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        return (self.stderr or "") + (self.stdout or "")


class ToolRunner:
    """Runs external tools; the only place that spawns processes."""

    def run(self, tool: str, args: Sequence[str] = (), cwd: Optional[PathLike] = None) -> ToolResult:
        cmd = [tool, *args]
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                cwd=str(cwd) if cwd is not None else None,
            )
        except FileNotFoundError as exc:
            return ToolResult(127, "", str(exc))
        return ToolResult(proc.returncode, proc.stdout or "", proc.stderr or "")

    def available(self, tool: str) -> bool:
        return shutil.which(tool) is not None
