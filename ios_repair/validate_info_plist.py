#!/usr/bin/env python3
"""Validate and fix the Info.plist keys App Store submission requires.

Usage:
  ios-validate-info-plist --validate [PATH]
  ios-validate-info-plist --fix [PATH] [APP_NAME] [BUNDLE_ID] [VERSION] [BUILD_NUMBER]
  ios-validate-info-plist --validate-all [ROOT]
"""

from __future__ import annotations

import argparse
import logging
import plistlib
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence
from xml.parsers.expat import ExpatError

from ios_repair import config
from ios_repair.common import (
    PostconditionError,
    PreconditionError,
    RepairError,
    configure_logging,
    log_success,
    replace_with_backup,
    report_failure,
)

logger = logging.getLogger(__name__)

DEFAULT_PLIST = Path("ios/Runner/Info.plist")
DEFAULT_EXECUTABLE = "$(EXECUTABLE_NAME)"
SKIP_DIRS = {"Pods", "build", ".symlinks", "DerivedData", ".git"}


@dataclass
class PlistStatus:
    path: Path
    missing: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.error is None and not self.missing


def load_plist(path: Path) -> tuple[dict, Any]:
    if not path.is_file():
        raise PreconditionError(f"Info.plist not found: {path}")
    data = path.read_bytes()
    fmt = plistlib.FMT_BINARY if data.startswith(b"bplist") else plistlib.FMT_XML
    try:
        payload = plistlib.loads(data)
    except (plistlib.InvalidFileException, ExpatError, ValueError) as exc:
        raise PreconditionError(f"Info.plist is not a valid property list: {path} ({exc})") from exc
    if not isinstance(payload, dict):
        raise PreconditionError(f"Info.plist root is not a dictionary: {path}")
    return payload, fmt


def dump_plist(payload: dict, fmt: Any) -> bytes:
    return plistlib.dumps(payload, fmt=fmt, sort_keys=False)


def has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list, dict, bytes)):
        return len(value) > 0
    return True


def missing_keys(payload: dict, required: Sequence[str] = config.REQUIRED_INFO_PLIST_KEYS) -> list[str]:
    return [key for key in required if not has_value(payload.get(key))]


def check_info_plist(path: Path) -> PlistStatus:
    try:
        payload, _fmt = load_plist(path)
    except PreconditionError as exc:
        return PlistStatus(path, error=str(exc))
    return PlistStatus(path, missing=missing_keys(payload))


def validate_info_plist(path: Path) -> bool:
    logger.info("🔍 Validating Info.plist: %s", path)
    status = check_info_plist(path)
    if status.error:
        logger.error("❌ %s", status.error)
        return False
    if status.missing:
        logger.warning("⚠️ Missing keys in Info.plist: %s", " ".join(status.missing))
        return False
    log_success(logger, "✅ All required keys present in Info.plist")
    return True


def default_values(app_name: str, bundle_id: str, version: str, build_number: str) -> dict[str, Any]:
    return {
        "CFBundleDisplayName": app_name,
        "CFBundleExecutable": DEFAULT_EXECUTABLE,
        "CFBundleIdentifier": bundle_id,
        "CFBundleName": app_name,
        "CFBundleShortVersionString": version,
        "CFBundleVersion": build_number,
        "UISupportedInterfaceOrientations": list(config.SUPPORTED_ORIENTATIONS),
        "UISupportedInterfaceOrientations~ipad": list(config.SUPPORTED_ORIENTATIONS),
    }


def fix_info_plist(
    path: Path,
    app_name: str = config.MAIN_TARGET,
    bundle_id: str = config.DEFAULT_BUNDLE_ID,
    version: str = "1.0.0",
    build_number: str = "1",
) -> list[str]:
    """Insert every missing required key and return the keys added.

    Raises ``PostconditionError`` when the rewritten file still fails
    validation.
    """
    logger.info("🔧 Fixing Info.plist: %s", path)
    payload, fmt = load_plist(path)
    missing = missing_keys(payload)
    if not missing:
        log_success(logger, "✅ Info.plist already has every required key")
        return []

    defaults = default_values(app_name, bundle_id, version, build_number)
    for key in missing:
        logger.info("➕ Adding %s...", key)
        payload[key] = defaults[key]

    backup = replace_with_backup(path, dump_plist(payload, fmt))
    if backup is not None:
        logger.info("📋 Backup created: %s", backup)

    status = check_info_plist(path)
    if not status.valid:
        raise PostconditionError(
            f"{path} still invalid after fix: {status.error or ', '.join(status.missing)}"
        )
    log_success(logger, "✅ Info.plist validation passed after fix")
    return missing


def find_info_plists(root: Path) -> list[Path]:
    found = []
    for path in sorted(root.rglob("Info.plist")):
        rel = path.relative_to(root)
        if any(part in SKIP_DIRS for part in rel.parts[:-1]):
            continue
        if path.is_file():
            found.append(path)
    return found


def validate_all_info_plists(root: Path) -> bool:
    logger.info("🔍 Validating all Info.plist files under %s...", root)
    plists = find_info_plists(root)
    if not plists:
        logger.warning("⚠️ No Info.plist files found in project")
        return False

    failed = [path for path in plists if not validate_info_plist(path)]
    if failed:
        logger.warning("⚠️ %d Info.plist files need fixing", len(failed))
        for path in failed:
            logger.warning("   - %s", path)
        return False
    log_success(logger, "✅ All %d Info.plist files are valid", len(plists))
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter
    )
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--validate", action="store_const", const="validate", dest="mode", help="Validate one Info.plist")
    mode.add_argument("--fix", action="store_const", const="fix", dest="mode", help="Insert missing keys")
    mode.add_argument(
        "--validate-all", action="store_const", const="validate-all", dest="mode", help="Validate every Info.plist under ROOT"
    )
    parser.add_argument("args", nargs="*", help="PATH (or ROOT) followed by fix parameters")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = config.RepairSettings.from_env()
    configure_logging("DEBUG" if args.verbose else settings.log_level)
    positional = list(args.args)

    try:
        if args.mode == "validate":
            path = Path(positional[0]) if positional else DEFAULT_PLIST
            return 0 if validate_info_plist(path) else 1
        if args.mode == "validate-all":
            root = Path(positional[0]) if positional else Path(".")
            return 0 if validate_all_info_plists(root) else 1
        if len(positional) > 5:
            parser.error("--fix takes at most PATH APP_NAME BUNDLE_ID VERSION BUILD_NUMBER")
        defaults = [str(DEFAULT_PLIST), config.MAIN_TARGET, config.DEFAULT_BUNDLE_ID, "1.0.0", "1"]
        path, app_name, bundle_id, version, build_number = positional + defaults[len(positional):]
        fix_info_plist(Path(path), app_name, bundle_id, version, build_number)
        return 0
    except RepairError as exc:
        return report_failure(logger, exc)


if __name__ == "__main__":
    sys.exit(main())
