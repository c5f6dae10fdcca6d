from __future__ import annotations

import plistlib

import pytest

from conftest import FakeRunner
from ios_repair import config
from ios_repair import verify_toolchain as vt
from ios_repair.common import ToolResult

SDK_ARGS = ("-version", "-sdk", "iphoneos", "ProductVersion")


@pytest.fixture
def project_root(tmp_path):
    ios = tmp_path / "ios"
    (ios / "Flutter").mkdir(parents=True)
    (ios / "Podfile").write_text("# platform :ios, '9.0'\nplatform :ios, '13.0'\n", encoding="utf-8")
    (ios / "Flutter" / "AppFrameworkInfo.plist").write_bytes(plistlib.dumps({"MinimumOSVersion": "13.0"}))
    return tmp_path


def _runner(xcode="Xcode 16.2\nBuild version 16C5032a\n", sdk="18.2\n"):
    return FakeRunner(
        {
            ("xcodebuild", ("-version",)): ToolResult(0, xcode),
            ("xcodebuild", SDK_ARGS): ToolResult(0, sdk),
        }
    )


@pytest.mark.parametrize(
    "value,expected",
    [("16.2", 16), ("v15", 15), (" 18.0.1", 18), ("unknown", None), ("", None), (None, None)],
)
def test_parse_major_version(value, expected):
    assert vt.parse_major_version(value) == expected


def test_output_parsers():
    assert vt.parse_xcodebuild_version("Xcode 16.2\nBuild version 16C5032a") == "16.2"
    assert vt.parse_xcodebuild_version("xcode-select: error") is None
    assert vt.parse_sdk_version("18.2\n") == "18.2"
    assert vt.parse_podfile_platform("# platform :ios, '9.0'\nplatform :ios, \"14.0\"\n") == "14.0"
    assert vt.parse_podfile_platform("target 'Runner' do\nend\n") is None


def test_minimum_os_version_from_plist_or_text():
    assert vt.parse_minimum_os_version(plistlib.dumps({"MinimumOSVersion": "12.0"})) == "12.0"
    broken = b"<plist><dict><key>MinimumOSVersion</key>\n  <string>11.0</string>"
    assert vt.parse_minimum_os_version(broken) == "11.0"
    assert vt.parse_minimum_os_version(plistlib.dumps({"CFBundleName": "App"})) is None


def test_check_version_statuses():
    assert vt.check_version("Xcode version", "16.0", 16, fatal=True).status == vt.OK
    failed = vt.check_version("Xcode version", "15.2", 16, fatal=True)
    assert failed.status == vt.FAILED and failed.failed
    assert vt.check_version("iOS deployment target", "12.0", 13, fatal=False).status == vt.WARNING
    assert vt.check_version("iOS SDK version", None, 18, fatal=True).status == vt.WARNING


def test_old_xcode_from_environment_fails(project_root, monkeypatch):
    monkeypatch.setenv("XCODE_VERSION", "15.2")
    runner = _runner()
    assert vt.main(["--project-root", str(project_root)], runner=runner) == 1
    assert ("-version",) not in runner.commands("xcodebuild")


def test_current_xcode_from_environment_passes(project_root, monkeypatch):
    monkeypatch.setenv("XCODE_VERSION", "16.0")
    assert vt.main(["--project-root", str(project_root)], runner=_runner(sdk="18.0\n")) == 0


def test_old_sdk_fails(project_root):
    assert vt.main(["--project-root", str(project_root)], runner=_runner(sdk="17.5\n")) == 1


def test_low_deployment_target_only_warns(project_root):
    (project_root / "ios" / "Podfile").write_text("platform :ios, '12.0'\n", encoding="utf-8")
    results = vt.verify_toolchain(project_root, _runner(), config.RepairSettings())
    statuses = {r.name: r.status for r in results}
    assert statuses == {
        "Xcode version": vt.OK,
        "iOS SDK version": vt.OK,
        "iOS deployment target": vt.WARNING,
        "Flutter minimum iOS version": vt.OK,
    }
    assert vt.report(results)


def test_missing_xcodebuild_is_a_warning(tmp_path):
    results = vt.verify_toolchain(tmp_path, FakeRunner(tools=()), config.RepairSettings())
    assert all(r.status == vt.WARNING for r in results)
    assert vt.report(results)


def test_failed_xcodebuild_call_leaves_version_undetermined(project_root):
    runner = FakeRunner({"xcodebuild": ToolResult(1, "", "xcode-select: error: tool 'xcodebuild' requires Xcode")})
    results = vt.verify_toolchain(project_root, runner, config.RepairSettings())
    assert results[0].status == vt.WARNING and results[1].status == vt.WARNING


def test_ci_environment_is_reported(project_root, monkeypatch, caplog):
    monkeypatch.setenv("CM_BUILD_ID", "build-42")
    caplog.set_level("INFO", logger="ios_repair")
    assert vt.main(["--project-root", str(project_root)], runner=_runner()) == 0
    assert "CI (build build-42)" in caplog.text


def test_unparseable_environment_version_falls_back_to_xcodebuild(project_root, monkeypatch):
    runner = _runner(xcode="Xcode 15.2\nBuild version 15C500b\n")
    assert vt.detect_xcode_version(runner, "latest") == "15.2"
    assert ("-version",) in runner.commands("xcodebuild")
    monkeypatch.setenv("XCODE_VERSION", "latest")
    assert vt.main(["--project-root", str(project_root)], runner=_runner(xcode="Xcode 15.2\n")) == 1
