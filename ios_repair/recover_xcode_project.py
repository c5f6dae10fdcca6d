#!/usr/bin/env python3
"""Recover a corrupted Runner.xcodeproj/project.pbxproj.

CHECK -> RESTORE_FROM_BACKUP -> REGENERATE -> APPLY_SAFE_SETTINGS ->
REINSTALL_DEPENDENCIES -> FINAL_VALIDATE. A valid project stops at CHECK.
Regeneration only runs when no backup validates.
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
    backup_file,
    configure_logging,
    log_success,
    replace_with_backup,
    report_failure,
    timestamped_backups,
)
from ios_repair.pbxproj import Document, PBXParseError, is_structurally_valid
from ios_repair.reset_cocoapods import reset_cocoapods

logger = logging.getLogger(__name__)

CHECK = "CHECK"
RESTORE_FROM_BACKUP = "RESTORE_FROM_BACKUP"
REGENERATE = "REGENERATE"
APPLY_SAFE_SETTINGS = "APPLY_SAFE_SETTINGS"
REINSTALL_DEPENDENCIES = "REINSTALL_DEPENDENCIES"
FINAL_VALIDATE = "FINAL_VALIDATE"
DONE = "DONE"


@dataclass(frozen=True)
class ProjectPaths:
    root: Path
    main_target: str = config.MAIN_TARGET

    @property
    def ios_dir(self) -> Path:
        return self.root / "ios"

    @property
    def xcodeproj(self) -> Path:
        return self.ios_dir / f"{self.main_target}.xcodeproj"

    @property
    def pbxproj(self) -> Path:
        return self.xcodeproj / "project.pbxproj"

    @property
    def workspace(self) -> Path:
        return self.ios_dir / f"{self.main_target}.xcworkspace"


def check_project(paths: ProjectPaths) -> bool:
    logger.info("🔍 Checking project file: %s", paths.pbxproj)
    if not paths.pbxproj.is_file():
        logger.error("❌ Project file not found: %s", paths.pbxproj)
        return False
    if not is_structurally_valid(paths.pbxproj):
        logger.error("❌ Project file is corrupted (invalid property list)")
        return False
    log_success(logger, "✅ Project file structure is valid")
    return True


def backup_candidates(pbxproj: Path) -> list[Path]:
    fixed = [pbxproj.with_name(pbxproj.name + suffix) for suffix in config.PROJECT_BACKUP_SUFFIXES]
    candidates = [path for path in fixed if path.is_file()]
    candidates += [path for path in timestamped_backups(pbxproj) if path not in candidates]
    return candidates


def restore_from_backup(paths: ProjectPaths) -> Optional[Path]:
    logger.info("🔄 Attempting to restore from backup...")
    for candidate in backup_candidates(paths.pbxproj):
        if not is_structurally_valid(candidate):
            logger.warning("⚠️ Backup is also corrupted: %s", candidate)
            continue
        shutil.copy2(candidate, paths.pbxproj)
        log_success(logger, "✅ Project file restored from: %s", candidate)
        return candidate
    logger.warning("⚠️ No valid backup files found")
    return None


def regenerate_project(paths: ProjectPaths, runner: ToolRunner) -> None:
    logger.info("🔄 Regenerating project with flutter create...")
    if not runner.available("flutter"):
        raise ToolError("flutter not found on PATH; cannot regenerate the iOS project")
    if paths.xcodeproj.exists():
        # flutter create skips existing files, so the old bundle has to go.
        aside = paths.xcodeproj.with_name(paths.xcodeproj.name + ".corrupted")
        if aside.exists():
            shutil.rmtree(aside)
        shutil.move(str(paths.xcodeproj), str(aside))
        logger.info("📋 Corrupted project moved to %s", aside)
    result = runner.run("flutter", ["create", "--platforms", "ios", "."], cwd=paths.root)
    if not result.ok:
        raise ToolError(f"flutter create failed (exit {result.exit_code}): {result.output.strip()[-400:]}")
    if not paths.pbxproj.is_file():
        raise PostconditionError(f"flutter create did not produce {paths.pbxproj}")
    if not is_structurally_valid(paths.pbxproj):
        raise PostconditionError("regenerated project file is still invalid")
    log_success(logger, "✅ Project file regenerated")


def _version_tuple(value: str) -> tuple[int, ...]:
    parts = []
    for piece in value.split("."):
        if not piece.isdigit():
            break
        parts.append(int(piece))
    return tuple(parts)


def apply_safe_settings(paths: ProjectPaths, platform: str = config.DEFAULT_PLATFORM) -> Optional[Path]:
    """Raise low deployment targets to ``platform`` and disable bitcode.

    Project-level configurations get both settings; target configurations are
    only touched where they already override them.
    """
    logger.info("🔧 Applying safe project settings...")
    try:
        doc = Document.load(paths.pbxproj)
    except (UnicodeDecodeError, PBXParseError) as exc:
        raise PreconditionError(f"cannot read {paths.pbxproj}: {exc}") from exc
    floor = _version_tuple(platform)
    for configuration in doc.build_configurations():
        project_level = configuration.target_kind == "PBXProject"
        for key, template in config.SAFE_PROJECT_SETTINGS:
            value = template.format(platform=platform)
            current = configuration.settings.get_str(key)
            if current is None:
                if project_level:
                    doc.set_setting(configuration.settings, key, value)
                continue
            if key == "IPHONEOS_DEPLOYMENT_TARGET":
                current_version = _version_tuple(current)
                if current_version and current_version >= floor:
                    continue
                if not current_version and not project_level:
                    continue
            doc.set_setting(configuration.settings, key, value)
    backup = replace_with_backup(paths.pbxproj, doc.render())
    if backup is None:
        log_success(logger, "✅ Safe project settings already in place")
    else:
        log_success(logger, "✅ Safe project settings applied (backup: %s)", backup)
    return backup


def final_validate(paths: ProjectPaths, runner: ToolRunner) -> None:
    logger.info("🔍 Validating project and workspace...")
    if not is_structurally_valid(paths.pbxproj):
        raise PostconditionError(f"project file validation failed: {paths.pbxproj}")
    log_success(logger, "✅ Project file is valid")

    if not paths.workspace.is_dir():
        logger.warning("⚠️ Workspace not found; CocoaPods recreates it on install")
    elif not (paths.workspace / "contents.xcworkspacedata").is_file():
        logger.warning("⚠️ Workspace contents file missing")

    if not runner.available("xcodebuild"):
        logger.warning("⚠️ xcodebuild not available, skipping project listing check")
        return
    result = runner.run("xcodebuild", ["-project", paths.xcodeproj.name, "-list"], cwd=paths.ios_dir)
    if not result.ok:
        raise PostconditionError(f"xcodebuild cannot open {paths.xcodeproj} (exit {result.exit_code})")
    log_success(logger, "✅ Project can be opened by xcodebuild")


def recover_project(
    paths: ProjectPaths,
    runner: ToolRunner,
    *,
    platform: str = config.DEFAULT_PLATFORM,
    repo_update: bool = True,
) -> list[str]:
    """Run the recovery state machine and return the completed steps."""
    completed = [CHECK]
    if check_project(paths):
        log_success(logger, "✅ Project file is not corrupted, no recovery needed")
        return completed + [DONE]

    if paths.pbxproj.is_file():
        logger.info("📋 Corrupted project saved as %s", backup_file(paths.pbxproj))

    if restore_from_backup(paths) is not None:
        completed.append(RESTORE_FROM_BACKUP)
    else:
        regenerate_project(paths, runner)
        completed.append(REGENERATE)
    _report(completed)

    apply_safe_settings(paths, platform)
    completed.append(APPLY_SAFE_SETTINGS)
    _report(completed)

    reset_cocoapods(paths.ios_dir, runner, platform=platform, main_target=paths.main_target, minimal=True, repo_update=repo_update)
    completed.append(REINSTALL_DEPENDENCIES)
    _report(completed)

    final_validate(paths, runner)
    completed.append(FINAL_VALIDATE)
    _report(completed)
    return completed + [DONE]


def _report(completed: list[str]) -> None:
    logger.info("   ✔ step %d completed: %s", len(completed), completed[-1])


def main(argv: Optional[Sequence[str]] = None, runner: Optional[ToolRunner] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--project-root", default=".", help="Flutter project root")
    parser.add_argument("--main-target", default=config.MAIN_TARGET)
    parser.add_argument("--platform", default=config.DEFAULT_PLATFORM, help="Deployment target floor")
    parser.add_argument("--skip-repo-update", action="store_true", help="Do not run pod repo update")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    args = parser.parse_args(argv)

    settings = config.RepairSettings.from_env()
    configure_logging("DEBUG" if args.verbose else settings.log_level)
    logger.info("🚨 Xcode project recovery")
    paths = ProjectPaths(Path(args.project_root), args.main_target)
    try:
        steps = recover_project(
            paths, runner or ToolRunner(), platform=args.platform, repo_update=not args.skip_repo_update
        )
    except RepairError as exc:
        return report_failure(logger, exc)
    log_success(logger, "✅ Xcode project recovery completed: %s", " -> ".join(steps))
    return 0


if __name__ == "__main__":
    sys.exit(main())
