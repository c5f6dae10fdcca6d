"""Fixed defaults and environment overrides shared by the repair commands."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_BUNDLE_ID = "com.example.app"
BUNDLE_ID_KEY = "PRODUCT_BUNDLE_IDENTIFIER"
MAIN_TARGET = "Runner"
TEST_MARKERS = ("Tests",)

# Identifiers starting with one of these are templated leftovers and safe to
# suffix per pod. Anything else belongs to a third party and stays untouched.
PLACEHOLDER_PREFIXES = ("com.example",)

DEFAULT_PLATFORM = "13.0"
MIN_XCODE_MAJOR = 16
MIN_SDK_MAJOR = 18
MIN_DEPLOYMENT_MAJOR = 13

VENDOR_FRAMEWORK_GROUP = "Firebase"

POD_POST_INSTALL_SETTINGS = (
    ("IPHONEOS_DEPLOYMENT_TARGET", "{platform}"),
    ("ENABLE_BITCODE", "NO"),
    ("ONLY_ACTIVE_ARCH", "YES"),
    ("CODE_SIGNING_ALLOWED", "NO"),
    ("CODE_SIGNING_REQUIRED", "NO"),
    ("CLANG_ALLOW_NON_MODULAR_INCLUDES_IN_FRAMEWORK_MODULES", "YES"),
    ("DEFINES_MODULE", "YES"),
    ("SWIFT_VERSION", "5.0"),
)

VENDOR_POST_INSTALL_SETTINGS = (
    ("GCC_WARN_INHIBIT_ALL_WARNINGS", "YES"),
    ("CLANG_WARN_EVERYTHING", "NO"),
    ("WARNING_CFLAGS", ""),
    ("OTHER_CFLAGS", "$(inherited) -w"),
)

MINIMAL_POST_INSTALL_SETTINGS = (
    ("IPHONEOS_DEPLOYMENT_TARGET", "{platform}"),
    ("ENABLE_BITCODE", "NO"),
    ("CODE_SIGNING_ALLOWED", "NO"),
    ("CODE_SIGNING_REQUIRED", "NO"),
)

REQUIRED_INFO_PLIST_KEYS = (
    "CFBundleDisplayName",
    "CFBundleExecutable",
    "CFBundleIdentifier",
    "CFBundleName",
    "CFBundleShortVersionString",
    "CFBundleVersion",
    "UISupportedInterfaceOrientations",
    "UISupportedInterfaceOrientations~ipad",
)

SUPPORTED_ORIENTATIONS = (
    "UIInterfaceOrientationPortrait",
    "UIInterfaceOrientationPortraitUpsideDown",
    "UIInterfaceOrientationLandscapeLeft",
    "UIInterfaceOrientationLandscapeRight",
)

# Ordered by preference; recovery validates each before restoring it.
PROJECT_BACKUP_SUFFIXES = (
    ".original",
    ".backup",
    ".integration_fix_backup",
    ".linker_fix_backup",
    ".final_solution_backup",
    ".script_phases_backup",
)

SAFE_PROJECT_SETTINGS = (
    ("IPHONEOS_DEPLOYMENT_TARGET", "{platform}"),
    ("ENABLE_BITCODE", "NO"),
)

DERIVED_DATA_DIR = Path("~/Library/Developer/Xcode/DerivedData").expanduser()

_TRUTHY = {"1", "true", "yes", "y", "on"}


def env_truthy(name: str, default: str = "", environ: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    return env.get(name, default).strip().lower() in _TRUTHY


@dataclass(frozen=True)
class RepairSettings:
    bundle_id: str = DEFAULT_BUNDLE_ID
    xcode_version: Optional[str] = None
    ci_build_id: Optional[str] = None
    firebase_disabled: bool = False
    log_level: str = "INFO"

    @property
    def in_ci(self) -> bool:
        return bool(self.ci_build_id)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RepairSettings":
        env = os.environ if environ is None else environ
        return cls(
            bundle_id=env.get("BUNDLE_ID", "").strip() or DEFAULT_BUNDLE_ID,
            xcode_version=env.get("XCODE_VERSION", "").strip() or None,
            ci_build_id=env.get("CM_BUILD_ID", "").strip() or None,
            firebase_disabled=env_truthy("FIREBASE_DISABLED", environ=env),
            log_level=env.get("IOS_REPAIR_LOG_LEVEL", "").strip().upper() or "INFO",
        )
