#!/usr/bin/env python3
"""Wipe CocoaPods state, write a known-good Podfile and reinstall pods.

Installation walks an ordered list of strategies; the first one that succeeds
wins, and the run fails only when every strategy has failed.
"""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from ios_repair import config
from ios_repair.common import (
    PostconditionError,
    PreconditionError,
    RepairError,
    ToolError,
    ToolRunner,
    configure_logging,
    log_success,
    replace_with_backup,
    report_failure,
)
from ios_repair.podfile import render_podfile

logger = logging.getLogger(__name__)

XCFILELISTS = (
    "Pods-{target}-frameworks-Release-input-files.xcfilelist",
    "Pods-{target}-frameworks-Release-output-files.xcfilelist",
    "Pods-{target}-resources-Release-input-files.xcfilelist",
    "Pods-{target}-resources-Release-output-files.xcfilelist",
)


@dataclass(frozen=True)
class InstallStrategy:
    name: str
    install_args: tuple[str, ...]
    # Run before installing; failures here are only logged.
    prepare: tuple[tuple[str, ...], ...] = ()


DEFAULT_STRATEGIES = (
    InstallStrategy("standard", ("install", "--repo-update", "--clean-install")),
    InstallStrategy(
        "cache-cleared",
        ("install", "--repo-update"),
        prepare=(("cache", "clean", "--all"),),
    ),
)

MINIMAL_STRATEGIES = (
    InstallStrategy("standard", ("install", "--repo-update")),
    InstallStrategy("cache-cleared", ("install", "--repo-update"), prepare=(("cache", "clean", "--all"),)),
)


def _remove(path: Path) -> bool:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        return True
    if path.exists() or path.is_symlink():
        path.unlink()
        return True
    return False


def clean_cocoapods_environment(
    ios_dir: Path,
    derived_data: Optional[Path] = None,
    main_target: str = config.MAIN_TARGET,
) -> list[Path]:
    """Delete generated CocoaPods artifacts and return what was removed."""
    logger.info("🧹 Cleaning CocoaPods environment in %s...", ios_dir)
    candidates = [
        ios_dir / "Pods",
        ios_dir / "Podfile.lock",
        ios_dir / ".symlinks",
        ios_dir / f"{main_target}.xcworkspace",
    ]
    if derived_data is not None and derived_data.is_dir():
        candidates += sorted(derived_data.glob(f"{main_target}-*"))

    removed = [path for path in candidates if _remove(path)]
    for path in removed:
        logger.debug("   removed %s", path)
    log_success(logger, "✅ CocoaPods environment cleaned (%d entries removed)", len(removed))
    return removed


def write_podfile(ios_dir: Path, content: str) -> Optional[Path]:
    podfile = ios_dir / "Podfile"
    backup = replace_with_backup(podfile, content)
    if backup is not None:
        logger.info("📋 Backup created: %s", backup)
    log_success(logger, "✅ Known-good Podfile written: %s", podfile)
    return backup


def update_pod_repo(ios_dir: Path, runner: ToolRunner) -> bool:
    logger.info("   Updating CocoaPods repository...")
    result = runner.run("pod", ["repo", "update", "--silent"], cwd=ios_dir)
    if not result.ok:
        logger.warning("⚠️ pod repo update failed (exit %d), continuing", result.exit_code)
    return result.ok


def install_pods(
    ios_dir: Path,
    runner: ToolRunner,
    strategies: Sequence[InstallStrategy] = DEFAULT_STRATEGIES,
) -> str:
    """Try each strategy in order and return the name of the first to succeed."""
    failures = []
    for strategy in strategies:
        logger.info("📦 Installing pods (%s)...", strategy.name)
        for args in strategy.prepare:
            prep = runner.run("pod", list(args), cwd=ios_dir)
            if not prep.ok:
                logger.warning("⚠️ pod %s failed (exit %d)", " ".join(args), prep.exit_code)
        result = runner.run("pod", list(strategy.install_args), cwd=ios_dir)
        if result.ok:
            log_success(logger, "✅ CocoaPods installation completed (%s)", strategy.name)
            return strategy.name
        tail = result.output.strip().splitlines()[-1:] or [""]
        logger.error("❌ pod install failed with %s strategy (exit %d) %s", strategy.name, result.exit_code, tail[0])
        failures.append(f"{strategy.name}: exit {result.exit_code}")
    raise ToolError("pod install failed with every strategy (" + ", ".join(failures) + ")")


def ensure_xcfilelists(ios_dir: Path, main_target: str = config.MAIN_TARGET) -> list[Path]:
    support = ios_dir / "Pods" / "Target Support Files" / f"Pods-{main_target}"
    created = []
    for template in XCFILELISTS:
        path = support / template.format(target=main_target)
        if path.is_file():
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch()
        created.append(path)
        logger.warning("   🔧 Created empty fallback: %s", path)
    if not created:
        logger.info("✅ All xcfilelist files present")
    return created


def validate_workspace(ios_dir: Path, main_target: str = config.MAIN_TARGET) -> None:
    workspace = ios_dir / f"{main_target}.xcworkspace"
    contents = workspace / "contents.xcworkspacedata"
    if not workspace.is_dir():
        raise PostconditionError(f"workspace not found after install: {workspace}")
    if not contents.is_file():
        raise PostconditionError(f"workspace contents file missing: {contents}")
    if "Pods.xcodeproj" in contents.read_text(encoding="utf-8", errors="ignore"):
        log_success(logger, "✅ Pods project referenced in workspace")
    else:
        logger.warning("⚠️ Pods project not referenced in %s", contents)


def reset_cocoapods(
    ios_dir: Path,
    runner: ToolRunner,
    *,
    platform: str = config.DEFAULT_PLATFORM,
    bundle_id: str = config.DEFAULT_BUNDLE_ID,
    derived_data: Optional[Path] = None,
    main_target: str = config.MAIN_TARGET,
    minimal: bool = False,
    repo_update: bool = True,
) -> str:
    if not ios_dir.is_dir():
        raise PreconditionError(f"iOS directory not found: {ios_dir}")
    if not runner.available("pod"):
        raise ToolError("pod not found on PATH")

    clean_cocoapods_environment(ios_dir, derived_data, main_target)
    write_podfile(ios_dir, render_podfile(platform, bundle_id=bundle_id, main_target=main_target, minimal=minimal))
    if repo_update:
        update_pod_repo(ios_dir, runner)
    strategy = install_pods(ios_dir, runner, MINIMAL_STRATEGIES if minimal else DEFAULT_STRATEGIES)
    ensure_xcfilelists(ios_dir, main_target)
    validate_workspace(ios_dir, main_target)
    return strategy


def main(argv: Optional[Sequence[str]] = None, runner: Optional[ToolRunner] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--ios-dir", default="ios", help="Directory holding the Podfile")
    parser.add_argument("--platform", default=config.DEFAULT_PLATFORM, help="iOS platform floor for the Podfile")
    parser.add_argument("--bundle-id", help="Base bundle identifier (default: $BUNDLE_ID)")
    parser.add_argument("--derived-data", default=str(config.DERIVED_DATA_DIR), help="Xcode DerivedData directory")
    parser.add_argument("--main-target", default=config.MAIN_TARGET)
    parser.add_argument("--skip-repo-update", action="store_true", help="Do not run pod repo update")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    args = parser.parse_args(argv)

    settings = config.RepairSettings.from_env()
    configure_logging("DEBUG" if args.verbose else settings.log_level)
    logger.info("🔧 CocoaPods environment reset")
    try:
        strategy = reset_cocoapods(
            Path(args.ios_dir),
            runner or ToolRunner(),
            platform=args.platform,
            bundle_id=args.bundle_id or settings.bundle_id,
            derived_data=Path(args.derived_data),
            main_target=args.main_target,
            repo_update=not args.skip_repo_update,
        )
    except RepairError as exc:
        return report_failure(logger, exc)
    log_success(logger, "✅ CocoaPods environment reset completed (%s install)", strategy)
    return 0


if __name__ == "__main__":
    sys.exit(main())
