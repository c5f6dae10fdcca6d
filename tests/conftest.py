from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

import pytest

from ios_repair.common import ToolResult

RUNNER_PROJECT = """\
// !$*UTF8*$!
{
	archiveVersion = 1;
	classes = {
	};
	objectVersion = 54;
	objects = {

/* Begin PBXNativeTarget section */
		331C8080294A63A400263BE5 /* RunnerTests */ = {
			isa = PBXNativeTarget;
			buildConfigurationList = 331C8087294A63A400263BE5 /* Build configuration list for PBXNativeTarget "RunnerTests" */;
			buildPhases = (
			);
			name = RunnerTests;
			productName = RunnerTests;
			productType = "com.apple.product-type.bundle.unit-test";
		};
		97C146ED1CF9000F007C117D /* Runner */ = {
			isa = PBXNativeTarget;
			buildConfigurationList = 97C147051CF9000F007C117D /* Build configuration list for PBXNativeTarget "Runner" */;
			buildPhases = (
			);
			name = Runner;
			productName = Runner;
			productType = "com.apple.product-type.application";
		};
/* End PBXNativeTarget section */

/* Begin PBXProject section */
		97C146E61CF9000F007C117D /* Project object */ = {
			isa = PBXProject;
			buildConfigurationList = 97C146E91CF9000F007C117D /* Build configuration list for PBXProject "Runner" */;
			compatibilityVersion = "Xcode 9.3";
			mainGroup = 97C146E51CF9000F007C117D;
			targets = (
				97C146ED1CF9000F007C117D /* Runner */,
				331C8080294A63A400263BE5 /* RunnerTests */,
			);
		};
/* End PBXProject section */

/* Begin XCBuildConfiguration section */
		331C8088294A63A400263BE5 /* Debug */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				BUNDLE_LOADER = "$(TEST_HOST)";
				CODE_SIGN_STYLE = Automatic;
				PRODUCT_BUNDLE_IDENTIFIER = com.example.app;
				TEST_HOST = "$(BUILT_PRODUCTS_DIR)/Runner.app/$(BUNDLE_EXECUTABLE_FOLDER_PATH)/Runner";
			};
			name = Debug;
		};
		331C8089294A63A400263BE5 /* Release */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				BUNDLE_LOADER = "$(TEST_HOST)";
				CODE_SIGN_STYLE = Automatic;
				PRODUCT_BUNDLE_IDENTIFIER = com.example.app;
				TEST_HOST = "$(BUILT_PRODUCTS_DIR)/Runner.app/$(BUNDLE_EXECUTABLE_FOLDER_PATH)/Runner";
			};
			name = Release;
		};
		97C147031CF9000F007C117D /* Debug */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				ALWAYS_SEARCH_USER_PATHS = NO;
				IPHONEOS_DEPLOYMENT_TARGET = 12.0;
				SDKROOT = iphoneos;
			};
			name = Debug;
		};
		97C147061CF9000F007C117D /* Debug */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				ASSETCATALOG_COMPILER_APPICON_NAME = AppIcon;
				INFOPLIST_FILE = Runner/Info.plist;
				LD_RUNPATH_SEARCH_PATHS = (
					"$(inherited)",
					"@executable_path/Frameworks",
				);
				PRODUCT_BUNDLE_IDENTIFIER = com.example.app;
				PRODUCT_NAME = "$(TARGET_NAME)";
			};
			name = Debug;
		};
		97C147071CF9000F007C117D /* Release */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				ASSETCATALOG_COMPILER_APPICON_NAME = AppIcon;
				INFOPLIST_FILE = Runner/Info.plist;
				LD_RUNPATH_SEARCH_PATHS = (
					"$(inherited)",
					"@executable_path/Frameworks",
				);
				PRODUCT_BUNDLE_IDENTIFIER = com.example.app;
				PRODUCT_NAME = "$(TARGET_NAME)";
			};
			name = Release;
		};
/* End XCBuildConfiguration section */

/* Begin XCConfigurationList section */
		331C8087294A63A400263BE5 /* Build configuration list for PBXNativeTarget "RunnerTests" */ = {
			isa = XCConfigurationList;
			buildConfigurations = (
				331C8088294A63A400263BE5 /* Debug */,
				331C8089294A63A400263BE5 /* Release */,
			);
			defaultConfigurationIsVisible = 0;
			defaultConfigurationName = Release;
		};
		97C146E91CF9000F007C117D /* Build configuration list for PBXProject "Runner" */ = {
			isa = XCConfigurationList;
			buildConfigurations = (
				97C147031CF9000F007C117D /* Debug */,
			);
			defaultConfigurationIsVisible = 0;
			defaultConfigurationName = Debug;
		};
		97C147051CF9000F007C117D /* Build configuration list for PBXNativeTarget "Runner" */ = {
			isa = XCConfigurationList;
			buildConfigurations = (
				97C147061CF9000F007C117D /* Debug */,
				97C147071CF9000F007C117D /* Release */,
			);
			defaultConfigurationIsVisible = 0;
			defaultConfigurationName = Release;
		};
/* End XCConfigurationList section */
	};
	rootObject = 97C146E61CF9000F007C117D /* Project object */;
}
"""

# Three loose configurations, the second one belonging to a test bundle.
THREE_BLOCK_PROJECT = """\
// !$*UTF8*$!
{
	objects = {
		AAAA00000000000000000001 /* Release */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				PRODUCT_BUNDLE_IDENTIFIER = com.x.app;
				PRODUCT_NAME = "$(TARGET_NAME)";
			};
			name = Release;
		};
		AAAA00000000000000000002 /* Release */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				PRODUCT_BUNDLE_IDENTIFIER = com.x.app;
				TEST_TARGET_NAME = RunnerTests;
			};
			name = Release;
		};
		AAAA00000000000000000003 /* Release */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				PRODUCT_BUNDLE_IDENTIFIER = com.x.app;
				SKIP_INSTALL = YES;
			};
			name = Release;
		};
	};
	rootObject = AAAA00000000000000000000;
}
"""

Handler = Union[ToolResult, List[ToolResult], Callable[..., ToolResult]]


class FakeRunner:
    """Stands in for ToolRunner; records calls and replays scripted results."""

    def __init__(self, handlers: Optional[Dict[object, Handler]] = None, tools: Iterable[str] = ("pod", "xcodebuild", "flutter")):
        self.handlers: Dict[object, Handler] = dict(handlers or {})
        self.tools = set(tools)
        self.calls: List[Tuple[str, Tuple[str, ...], Optional[Path]]] = []

    def run(self, tool, args=(), cwd=None) -> ToolResult:
        args = tuple(args)
        self.calls.append((tool, args, Path(cwd) if cwd is not None else None))
        handler = self.handlers.get((tool, args), self.handlers.get(tool))
        if callable(handler):
            return handler(tool, args, cwd)
        if isinstance(handler, list):
            return handler.pop(0) if handler else ToolResult(0)
        return handler if handler is not None else ToolResult(0)

    def available(self, tool: str) -> bool:
        return tool in self.tools

    def commands(self, tool: str) -> List[Tuple[str, ...]]:
        return [args for name, args, _cwd in self.calls if name == tool]


def fake_pod_install(tool, args, cwd) -> ToolResult:
    workspace = Path(cwd) / "Runner.xcworkspace"
    workspace.mkdir(parents=True, exist_ok=True)
    (workspace / "contents.xcworkspacedata").write_text(
        '<Workspace version = "1.0">\n'
        '   <FileRef location = "group:Runner.xcodeproj"></FileRef>\n'
        '   <FileRef location = "group:Pods/Pods.xcodeproj"></FileRef>\n'
        "</Workspace>\n",
        encoding="utf-8",
    )
    (Path(cwd) / "Pods").mkdir(exist_ok=True)
    return ToolResult(0, "Pod installation complete!")


@pytest.fixture
def runner_project() -> str:
    return RUNNER_PROJECT


@pytest.fixture
def project_file(tmp_path: Path) -> Path:
    path = tmp_path / "ios" / "Runner.xcodeproj" / "project.pbxproj"
    path.parent.mkdir(parents=True)
    path.write_text(RUNNER_PROJECT, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("BUNDLE_ID", "XCODE_VERSION", "CM_BUILD_ID", "FIREBASE_DISABLED", "IOS_REPAIR_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
