#!/usr/bin/env python3
"""Verify Xcode and iOS SDK versions meet App Store Connect minimums.

Xcode and SDK checks are fatal. Deployment target and Flutter minimum OS
checks only warn.
"""

from __future__ import annotations

import argparse
import logging
import plistlib
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence
from xml.parsers.expat import ExpatError

from ios_repair import config
from ios_repair.common import ToolRunner, configure_logging, log_success

logger = logging.getLogger(__name__)

OK = "ok"
WARNING = "warning"
FAILED = "failed"

_MAJOR_RE = re.compile(r"\s*v?(\d+)")
_XCODE_RE = re.compile(r"Xcode\s+(\d+(?:\.\d+)*)")
_SDK_RE = re.compile(r"^\s*(\d+(?:\.\d+)*)\s*$", re.MULTILINE)
_PLATFORM_RE = re.compile(r"^\s*platform\s+:ios\s*,\s*['\"]([^'\"]+)['\"]", re.MULTILINE)
_MIN_OS_RE = re.compile(r"<key>MinimumOSVersion</key>\s*<string>([^<]*)</string>")


@dataclass(frozen=True)
class CheckResult:
    name: str
    status: str
    detail: str
    fatal: bool = False

    @property
    def failed(self) -> bool:
        return self.status == FAILED


def parse_major_version(version: Optional[str]) -> Optional[int]:
    if not version:
        return None
    match = _MAJOR_RE.match(version)
    return int(match.group(1)) if match else None


def parse_xcodebuild_version(output: str) -> Optional[str]:
    match = _XCODE_RE.search(output or "")
    return match.group(1) if match else None


def parse_sdk_version(output: str) -> Optional[str]:
    match = _SDK_RE.search(output or "")
    return match.group(1) if match else None


def parse_podfile_platform(text: str) -> Optional[str]:
    match = _PLATFORM_RE.search(text or "")
    return match.group(1).strip() if match else None


def parse_minimum_os_version(data: bytes) -> Optional[str]:
    try:
        payload = plistlib.loads(data)
    except (plistlib.InvalidFileException, ExpatError, ValueError):
        match = _MIN_OS_RE.search(data.decode("utf-8", errors="ignore"))
        return match.group(1).strip() if match else None
    value = payload.get("MinimumOSVersion") if isinstance(payload, dict) else None
    return str(value).strip() if value else None


def check_version(name: str, version: Optional[str], minimum: int, *, fatal: bool) -> CheckResult:
    major = parse_major_version(version)
    if major is None:
        return CheckResult(name, WARNING, f"could not determine {name} (got {version!r})", fatal)
    if major >= minimum:
        return CheckResult(name, OK, f"{name} {version} is compatible ({minimum}.0 or later)", fatal)
    if fatal:
        return CheckResult(name, FAILED, f"{name} {version} is not compatible; {minimum}.0 or later is required", fatal)
    return CheckResult(name, WARNING, f"{name} {version} may be too low; consider {minimum}.0 or later", fatal)


def detect_xcode_version(runner: ToolRunner, env_version: Optional[str]) -> Optional[str]:
    if parse_major_version(env_version) is not None:
        logger.info("   Xcode version from environment: %s", env_version)
        return env_version
    if env_version:
        logger.warning("⚠️ Ignoring unparseable XCODE_VERSION=%r, asking xcodebuild", env_version)
    if not runner.available("xcodebuild"):
        return None
    result = runner.run("xcodebuild", ["-version"])
    return parse_xcodebuild_version(result.stdout) if result.ok else None


def detect_sdk_version(runner: ToolRunner) -> Optional[str]:
    if not runner.available("xcodebuild"):
        return None
    result = runner.run("xcodebuild", ["-version", "-sdk", "iphoneos", "ProductVersion"])
    return parse_sdk_version(result.stdout) if result.ok else None


def verify_toolchain(
    project_root: Path,
    runner: ToolRunner,
    settings: config.RepairSettings,
    *,
    min_xcode: int = config.MIN_XCODE_MAJOR,
    min_sdk: int = config.MIN_SDK_MAJOR,
    min_deployment: int = config.MIN_DEPLOYMENT_MAJOR,
) -> list[CheckResult]:
    logger.info("📱 %s environment", "CI (build %s)" % settings.ci_build_id if settings.in_ci else "Local")
    results = [
        check_version("Xcode version", detect_xcode_version(runner, settings.xcode_version), min_xcode, fatal=True),
        check_version("iOS SDK version", detect_sdk_version(runner), min_sdk, fatal=True),
    ]

    podfile = project_root / "ios" / "Podfile"
    if podfile.is_file():
        platform = parse_podfile_platform(podfile.read_text(encoding="utf-8", errors="ignore"))
        results.append(check_version("iOS deployment target", platform, min_deployment, fatal=False))
    else:
        results.append(CheckResult("iOS deployment target", WARNING, f"Podfile not found: {podfile}"))

    framework_info = project_root / "ios" / "Flutter" / "AppFrameworkInfo.plist"
    if framework_info.is_file():
        minimum = parse_minimum_os_version(framework_info.read_bytes())
        results.append(check_version("Flutter minimum iOS version", minimum, min_deployment, fatal=False))
    else:
        results.append(CheckResult("Flutter minimum iOS version", WARNING, f"not found: {framework_info}"))
    return results


def report(results: Sequence[CheckResult]) -> bool:
    for result in results:
        if result.status == OK:
            log_success(logger, "✅ %s", result.detail)
        elif result.status == WARNING:
            logger.warning("⚠️ %s", result.detail)
        else:
            logger.error("❌ %s", result.detail)
    return not any(r.failed and r.fatal for r in results)


def main(argv: Optional[Sequence[str]] = None, runner: Optional[ToolRunner] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--project-root", default=".", help="Flutter project root")
    parser.add_argument("--min-xcode", type=int, default=config.MIN_XCODE_MAJOR)
    parser.add_argument("--min-sdk", type=int, default=config.MIN_SDK_MAJOR)
    parser.add_argument("--min-deployment", type=int, default=config.MIN_DEPLOYMENT_MAJOR)
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    args = parser.parse_args(argv)

    settings = config.RepairSettings.from_env()
    configure_logging("DEBUG" if args.verbose else settings.log_level)
    logger.info("🔍 Starting Xcode and iOS SDK verification...")
    results = verify_toolchain(
        Path(args.project_root),
        runner or ToolRunner(),
        settings,
        min_xcode=args.min_xcode,
        min_sdk=args.min_sdk,
        min_deployment=args.min_deployment,
    )
    if report(results):
        log_success(logger, "🎉 Compatibility checks completed")
        return 0
    logger.error("❌ Toolchain does not meet App Store Connect requirements")
    return 1


if __name__ == "__main__":
    sys.exit(main())
