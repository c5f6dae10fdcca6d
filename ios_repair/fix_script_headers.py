#!/usr/bin/env python3
"""Strip UTF-8 byte-order marks and repair shebang lines in shell scripts."""

from __future__ import annotations

import argparse
import logging
import stat
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence

from ios_repair import config
from ios_repair.common import configure_logging, log_success, replace_with_backup

logger = logging.getLogger(__name__)

BOM = b"\xef\xbb\xbf"
DEFAULT_SHEBANG = b"#!/bin/bash"
ACCEPTED_SHEBANGS = (b"#!/bin/bash", b"#!/bin/sh", b"#!/usr/bin/env bash", b"#!/usr/bin/env sh")


@dataclass
class HeaderFix:
    path: Path
    content: bytes
    bom_removed: bool = False
    shebang: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.bom_removed or self.shebang is not None


def repair_header(content: bytes, default_shebang: bytes = DEFAULT_SHEBANG) -> tuple[bytes, bool, Optional[str]]:
    """Return ``(content, bom_removed, shebang_action)`` for one script."""
    bom_removed = content.startswith(BOM)
    if bom_removed:
        content = content[len(BOM):]

    first_line = content.split(b"\n", 1)[0].rstrip(b"\r")
    if first_line.startswith(b"#!"):
        return content, bom_removed, None

    lines = content.splitlines(keepends=True)
    for index, line in enumerate(lines):
        if line.startswith(b"#!"):
            return b"".join(lines[index:]), bom_removed, "dropped leading junk before shebang"
    if not content.strip():
        return content, bom_removed, None
    return default_shebang + b"\n\n" + content, bom_removed, "prepended shebang"


def fix_script(path: Path, default_shebang: bytes = DEFAULT_SHEBANG) -> HeaderFix:
    original = path.read_bytes()
    content, bom_removed, action = repair_header(original, default_shebang)
    fix = HeaderFix(path, content, bom_removed, action)
    first_line = content.split(b"\n", 1)[0].rstrip(b"\r")
    if first_line.startswith(b"#!") and not first_line.startswith(ACCEPTED_SHEBANGS):
        logger.warning("⚠️ %s uses a non-shell interpreter: %s", path, first_line.decode("utf-8", "replace"))
    if not fix.changed:
        logger.info("✅ %s has a valid header", path)
        return fix

    backup = replace_with_backup(path, content)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    if bom_removed:
        logger.info("✅ BOM removed from %s", path)
    if action:
        logger.info("✅ Fixed shebang in %s (%s)", path, action)
    logger.debug("   backup: %s", backup)
    return fix


def discover_scripts(root: Path) -> list[Path]:
    skip = {".git", "Pods", "node_modules", "build", ".symlinks"}
    return [p for p in sorted(root.rglob("*.sh")) if p.is_file() and not skip.intersection(p.relative_to(root).parts)]


def fix_scripts(paths: Iterable[Path], default_shebang: bytes = DEFAULT_SHEBANG) -> tuple[list[HeaderFix], list[Path]]:
    fixes: list[HeaderFix] = []
    errors: list[Path] = []
    for path in paths:
        if not path.is_file():
            logger.warning("⚠️ Script file not found: %s", path)
            continue
        logger.info("🔍 Checking %s...", path)
        try:
            fixes.append(fix_script(path, default_shebang))
        except OSError as exc:
            logger.error("❌ Failed to fix %s: %s", path, exc)
            errors.append(path)
    return fixes, errors


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("scripts", nargs="*", help="Script files to repair")
    parser.add_argument("--root", help="Scan this directory for *.sh files")
    parser.add_argument("--shebang", default=DEFAULT_SHEBANG.decode(), help="Shebang to prepend when none exists")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    args = parser.parse_args(argv)

    settings = config.RepairSettings.from_env()
    configure_logging("DEBUG" if args.verbose else settings.log_level)
    paths = [Path(p) for p in args.scripts]
    if args.root:
        paths += discover_scripts(Path(args.root))
    if not paths:
        parser.error("give script paths or --root")

    logger.info("🧹 Fixing BOM characters and shebangs in %d script files...", len(paths))
    fixes, errors = fix_scripts(paths, args.shebang.encode())
    changed = sum(1 for fix in fixes if fix.changed)
    if errors:
        logger.error("❌ %d script files could not be repaired", len(errors))
        return 1
    log_success(logger, "✅ Script header fix completed (%d of %d changed)", changed, len(fixes))
    return 0


if __name__ == "__main__":
    sys.exit(main())
