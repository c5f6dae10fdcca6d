#!/usr/bin/env python3
"""Make every target's PRODUCT_BUNDLE_IDENTIFIER in project.pbxproj unique.

Configurations are grouped by the target that owns them and each group is
classified as app or test. The main target (``Runner`` unless told
otherwise, else the first app group) keeps the base identifier. Other app
groups get ``<base>.app.<n>`` and test groups get ``<base>.tests``
(``<base>.tests.<n>`` from the second one on). Running the repair on its own
output changes nothing.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

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
from ios_repair.pbxproj import BuildConfiguration, Document, PBXParseError, PBXString
from ios_repair.podfile import pod_bundle_identifier
from ios_repair.validate_info_plist import dump_plist, load_plist

logger = logging.getLogger(__name__)

DEFAULT_PROJECT = Path("ios/Runner.xcodeproj/project.pbxproj")
BUNDLE_ID_VARIABLE = "$(PRODUCT_BUNDLE_IDENTIFIER)"


@dataclass
class ConfigGroup:
    """Build configurations that belong to one target."""

    key: str
    target_name: Optional[str]
    configurations: list[BuildConfiguration] = field(default_factory=list)
    # Build settings source of each configuration minus the identifier line.
    texts: list[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        if self.target_name is None:
            return self.configurations[0].label
        return f'"{self.target_name}"'


@dataclass
class Assignment:
    group: ConfigGroup
    kind: str
    identifier: str


@dataclass
class RepairResult:
    text: str
    assignments: list[Assignment]

    @property
    def identifiers(self) -> list[str]:
        return [a.identifier for a in self.assignments]


Classifier = Callable[[ConfigGroup], bool]


def marker_classifier(markers: Iterable[str] = config.TEST_MARKERS) -> Classifier:
    """Build a classifier that flags groups mentioning any of ``markers``."""
    markers = tuple(markers)

    def is_test(group: ConfigGroup) -> bool:
        haystacks = [group.target_name or "", *group.texts]
        return any(marker in text for marker in markers for text in haystacks)

    return is_test


def _settings_text(doc: Document, configuration: BuildConfiguration, key: str) -> str:
    settings = configuration.settings
    entry = settings.entry(key)
    if entry is None:
        return doc.source(settings)
    return doc.text[settings.start:entry.start] + doc.text[entry.end:settings.end]


def collect_groups(doc: Document, key: str = config.BUNDLE_ID_KEY) -> list[ConfigGroup]:
    groups: dict[str, ConfigGroup] = {}
    for configuration in doc.build_configurations():
        if key not in configuration.settings:
            continue
        if configuration.target_name is None:
            group_key = f"object:{configuration.object_id}"
        else:
            group_key = f"target:{configuration.target_kind}:{configuration.target_name}"
        group = groups.setdefault(group_key, ConfigGroup(group_key, configuration.target_name))
        group.configurations.append(configuration)
        group.texts.append(_settings_text(doc, configuration, key))
    return list(groups.values())


def assign_identifiers(
    groups: Sequence[ConfigGroup],
    base: str,
    classifier: Optional[Classifier] = None,
    main_target: str = config.MAIN_TARGET,
) -> list[Assignment]:
    """Give ``base`` to the main app group and number every other group.

    The main group is the app group owned by ``main_target``, or the first app
    group when no target has that name.
    """
    classifier = classifier or marker_classifier()
    kinds = ["test" if classifier(group) else "app" for group in groups]
    apps = [group for group, kind in zip(groups, kinds) if kind == "app"]
    main = next((group for group in apps if group.target_name == main_target), apps[0] if apps else None)

    app_count = 1
    test_count = 0
    assignments = []
    for group, kind in zip(groups, kinds):
        if kind == "test":
            test_count += 1
            identifier = f"{base}.tests" if test_count == 1 else f"{base}.tests.{test_count}"
        elif group is main:
            identifier = base
        else:
            app_count += 1
            identifier = f"{base}.app.{app_count}"
        assignments.append(Assignment(group, kind, identifier))
    return assignments


def find_collisions(doc: Document, key: str = config.BUNDLE_ID_KEY) -> dict[str, list[str]]:
    """Map each identifier shared by more than one group to those groups' labels."""
    owners: dict[str, list[str]] = defaultdict(list)
    for group in collect_groups(doc, key):
        values = {c.settings.get_str(key) for c in group.configurations}
        for value in values:
            if value is not None and group.label not in owners[value]:
                owners[value].append(group.label)
    return {value: labels for value, labels in owners.items() if len(labels) > 1}


def _read_project(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise PreconditionError(f"{path} is not UTF-8 text: {exc}") from exc


def _parse(text: str, source: str) -> Document:
    try:
        return Document.from_text(text)
    except PBXParseError as exc:
        raise PreconditionError(f"cannot parse {source}: {exc}") from exc


def _check_unique(text: str, key: str) -> None:
    collisions = find_collisions(_parse(text, "repaired project"), key)
    if collisions:
        detail = "; ".join(f"{value} shared by {', '.join(labels)}" for value, labels in collisions.items())
        raise PostconditionError(f"duplicate bundle identifiers remain: {detail}")


def repair_project_text(
    text: str,
    base: str,
    key: str = config.BUNDLE_ID_KEY,
    classifier: Optional[Classifier] = None,
    main_target: str = config.MAIN_TARGET,
) -> RepairResult:
    doc = _parse(text, "project")
    assignments = assign_identifiers(collect_groups(doc, key), base, classifier, main_target)
    for assignment in assignments:
        for configuration in assignment.group.configurations:
            doc.set_setting(configuration.settings, key, assignment.identifier)
    output = doc.render()
    _check_unique(output, key)
    return RepairResult(output, assignments)


def repair_pods_text(
    text: str,
    prefixes: Sequence[str],
    key: str = config.BUNDLE_ID_KEY,
    main_target: str = config.MAIN_TARGET,
) -> str:
    doc = _parse(text, "Pods project")
    for configuration in doc.build_configurations():
        node = configuration.settings.get(key)
        if not isinstance(node, PBXString) or configuration.target_name is None:
            continue
        updated = pod_bundle_identifier(node.value, configuration.target_name, prefixes, main_target)
        if updated != node.value:
            logger.info("   %s: %s -> %s", configuration.label, node.value, updated)
            doc.set_string(node, updated)
    return doc.render()


def report_identifiers(doc: Document, key: str = config.BUNDLE_ID_KEY) -> dict[str, list[str]]:
    groups = collect_groups(doc, key)
    logger.info("Bundle identifier configuration (%d targets):", len(groups))
    for index, group in enumerate(groups, 1):
        values = sorted({c.settings.get_str(key) or "(non-string)" for c in group.configurations})
        names = ", ".join(c.name for c in group.configurations)
        logger.info("  %d. %s [%s]: %s", index, group.label, names, ", ".join(values))
    collisions = find_collisions(doc, key)
    for value, labels in collisions.items():
        logger.error("❌ %s is shared by %s", value, ", ".join(labels))
    return collisions


def fix_project(
    path: Path,
    base: str,
    key: str = config.BUNDLE_ID_KEY,
    classifier: Optional[Classifier] = None,
    main_target: str = config.MAIN_TARGET,
) -> RepairResult:
    if not path.is_file():
        raise PreconditionError(f"iOS project file not found: {path}")
    original = _read_project(path)
    result = repair_project_text(original, base, key, classifier, main_target)
    for assignment in result.assignments:
        logger.info("  %s %s -> %s", assignment.kind, assignment.group.label, assignment.identifier)
    backup = replace_with_backup(path, result.text)
    if backup is None:
        log_success(logger, "✅ Bundle identifiers already unique; nothing to change")
    else:
        logger.info("📋 Backup created: %s", backup)
        log_success(logger, "✅ Rewrote %d bundle identifier groups", len(result.assignments))
    return result


def fix_pods_project(path: Path, base: str, key: str = config.BUNDLE_ID_KEY) -> Optional[Path]:
    if not path.is_file():
        raise PreconditionError(f"Pods project file not found: {path}")
    prefixes = tuple(dict.fromkeys((base, *config.PLACEHOLDER_PREFIXES)))
    backup = replace_with_backup(path, repair_pods_text(_read_project(path), prefixes, key))
    if backup is not None:
        logger.info("📋 Backup created: %s", backup)
    return backup


def ensure_info_plist_variable(path: Path) -> bool:
    """Point CFBundleIdentifier at the build setting; return True if changed."""
    payload, fmt = load_plist(path)
    if payload.get("CFBundleIdentifier") == BUNDLE_ID_VARIABLE:
        logger.info("✅ Info.plist already uses %s", BUNDLE_ID_VARIABLE)
        return False
    payload["CFBundleIdentifier"] = BUNDLE_ID_VARIABLE
    backup = replace_with_backup(path, dump_plist(payload, fmt))
    logger.info("✅ Updated Info.plist to use %s (backup: %s)", BUNDLE_ID_VARIABLE, backup)
    return True


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("project", nargs="?", default=str(DEFAULT_PROJECT), help="Path to project.pbxproj")
    parser.add_argument("--bundle-id", help="Base bundle identifier (default: $BUNDLE_ID)")
    parser.add_argument("--key", default=config.BUNDLE_ID_KEY, help="Build setting holding the identifier")
    parser.add_argument(
        "--test-marker",
        action="append",
        default=None,
        help="Text marking a test target (repeatable, default: Tests)",
    )
    parser.add_argument("--main-target", default=config.MAIN_TARGET, help="Target that keeps the base identifier")
    parser.add_argument("--check", action="store_true", help="Only report identifiers and collisions")
    parser.add_argument("--pods-project", help="Also suffix placeholder identifiers in Pods.xcodeproj")
    parser.add_argument("--info-plist", help="Make CFBundleIdentifier in this Info.plist use the build setting")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    args = parser.parse_args(argv)

    settings = config.RepairSettings.from_env()
    configure_logging("DEBUG" if args.verbose else settings.log_level)
    base = args.bundle_id or settings.bundle_id
    path = Path(args.project)

    try:
        if args.check:
            if not path.is_file():
                raise PreconditionError(f"iOS project file not found: {path}")
            collisions = report_identifiers(_parse(_read_project(path), str(path)), args.key)
            if collisions:
                return 1
            log_success(logger, "✅ No bundle identifier collisions")
            return 0

        logger.info("🔧 Fixing bundle identifier collisions in %s", path)
        logger.info("🎯 Main bundle ID: %s", base)
        classifier = marker_classifier(args.test_marker or config.TEST_MARKERS)
        fix_project(path, base, args.key, classifier, args.main_target)
        if args.pods_project:
            logger.info("🔧 Suffixing placeholder identifiers in %s", args.pods_project)
            fix_pods_project(Path(args.pods_project), base, args.key)
        if args.info_plist:
            ensure_info_plist_variable(Path(args.info_plist))
    except RepairError as exc:
        return report_failure(logger, exc)

    log_success(logger, "✅ Bundle identifier collision fixes completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
