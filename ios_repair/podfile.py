"""Known-good Podfile templates and the per-pod bundle identifier rule."""

from __future__ import annotations

from typing import Iterable, Sequence

from ios_repair import config

_HEADER = """\
# {title}
platform :ios, '{platform}'
use_frameworks! :linkage => :static

ENV['COCOAPODS_DISABLE_STATS'] = 'true'

project '{main_target}', {{
  'Debug' => :debug,
  'Profile' => :release,
  'Release' => :release,
}}

def flutter_root
  generated_xcode_build_settings_path = File.expand_path(File.join('..', 'Flutter', 'Generated.xcconfig'), __FILE__)
  unless File.exist?(generated_xcode_build_settings_path)
    raise "#{{generated_xcode_build_settings_path}} must exist. If you're running pod install manually, make sure flutter pub get is executed first"
  end

  File.foreach(generated_xcode_build_settings_path) do |line|
    matches = line.match(/FLUTTER_ROOT\\=(.*)/)
    return matches[1].strip if matches
  end
  raise "FLUTTER_ROOT not found in #{{generated_xcode_build_settings_path}}. Try deleting Generated.xcconfig, then run flutter pub get"
end

require File.expand_path(File.join('packages', 'flutter_tools', 'bin', 'podhelper'), flutter_root)

flutter_ios_podfile_setup

target '{main_target}' do
  use_frameworks!
  use_modular_headers!

  flutter_install_all_ios_pods File.dirname(File.realpath(__FILE__))

  target '{main_target}Tests' do
    inherit! :search_paths
  end
end
"""


def ruby_string(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def pod_bundle_identifier(
    current: str,
    target_name: str,
    prefixes: Sequence[str] = config.PLACEHOLDER_PREFIXES,
    main_target: str = config.MAIN_TARGET,
) -> str:
    """Return the identifier a pod target's configuration should carry.

    Only placeholder identifiers are suffixed; an identifier that already ends
    with this target's ``.pod.<name>`` suffix is returned as is.
    """
    if target_name == main_target:
        return current
    if not any(current.startswith(prefix) for prefix in prefixes):
        return current
    suffix = f".pod.{target_name.lower()}"
    if current.endswith(suffix):
        return current
    return current + suffix


def _settings_lines(settings: Iterable[tuple[str, str]], platform: str, indent: str) -> list[str]:
    return [
        f"{indent}config.build_settings[{ruby_string(key)}] = {ruby_string(value.format(platform=platform))}"
        for key, value in settings
    ]


def render_post_install(
    platform: str = config.DEFAULT_PLATFORM,
    settings: Sequence[tuple[str, str]] = config.POD_POST_INSTALL_SETTINGS,
    vendor_group: str | None = config.VENDOR_FRAMEWORK_GROUP,
    prefixes: Sequence[str] | None = config.PLACEHOLDER_PREFIXES,
    main_target: str = config.MAIN_TARGET,
) -> str:
    lines = [
        "post_install do |installer|",
        "  installer.pods_project.targets.each do |target|",
        "    flutter_additional_ios_build_settings(target)",
        "    target.build_configurations.each do |config|",
    ]
    lines += _settings_lines(settings, platform, "      ")
    if vendor_group:
        group = ruby_string(vendor_group)
        lines += [
            "",
            f"      if target.name.include?({group})",
        ]
        lines += _settings_lines(config.VENDOR_POST_INSTALL_SETTINGS, platform, "        ")
        lines += [
            "        if ENV['FIREBASE_DISABLED'] == 'true'",
            "          config.build_settings['EXCLUDED_SOURCE_FILE_NAMES'] = ['**/*.swift']",
            "        end",
            "      end",
        ]
    if prefixes:
        prefix_list = ", ".join(ruby_string(prefix) for prefix in prefixes)
        lines += [
            "",
            f"      next if target.name == {ruby_string(main_target)}",
            "      current_bundle_id = config.build_settings['PRODUCT_BUNDLE_IDENTIFIER']",
            "      next unless current_bundle_id",
            "      suffix = '.pod.' + target.name.downcase",
            f"      if [{prefix_list}].any? {{ |prefix| current_bundle_id.start_with?(prefix) }} && !current_bundle_id.end_with?(suffix)",
            "        config.build_settings['PRODUCT_BUNDLE_IDENTIFIER'] = current_bundle_id + suffix",
            "      end",
        ]
    lines += [
        "    end",
        "  end",
        "end",
    ]
    return "\n".join(lines) + "\n"


def render_podfile(
    platform: str = config.DEFAULT_PLATFORM,
    *,
    bundle_id: str = config.DEFAULT_BUNDLE_ID,
    main_target: str = config.MAIN_TARGET,
    minimal: bool = False,
) -> str:
    """Render the full Podfile.

    The minimal variant carries only the deployment/signing settings and is what
    project recovery installs with.
    """
    if minimal:
        header = _HEADER.format(title="Minimal Podfile for project recovery", platform=platform, main_target=main_target)
        hook = render_post_install(
            platform,
            config.MINIMAL_POST_INSTALL_SETTINGS,
            vendor_group=None,
            prefixes=None,
            main_target=main_target,
        )
    else:
        header = _HEADER.format(title="Known-good Podfile", platform=platform, main_target=main_target)
        prefixes = tuple(dict.fromkeys((bundle_id, *config.PLACEHOLDER_PREFIXES)))
        hook = render_post_install(platform, prefixes=prefixes, main_target=main_target)
    return header + "\n" + hook
