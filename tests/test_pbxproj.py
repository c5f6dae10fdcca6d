from __future__ import annotations

import pytest

from ios_repair.pbxproj import (
    Document,
    PBXArray,
    PBXData,
    PBXDict,
    PBXParseError,
    PBXString,
    is_structurally_valid,
    parse,
    quote_string,
    validate_structure,
)


def test_parse_handles_comments_quotes_arrays_and_data():
    root = parse(
        '// !$*UTF8*$!\n{ /* c */ a = "x \\"y\\"\\n"; b = ( one, "two", ); c = <0aff>; d = Runner/Info.plist; }'
    )
    assert isinstance(root, PBXDict)
    assert root.get_str("a") == 'x "y"\n'
    array = root.get("b")
    assert isinstance(array, PBXArray)
    assert [item.value for item in array] == ["one", "two"]
    data = root.get("c")
    assert isinstance(data, PBXData) and data.value == b"\x0a\xff"
    assert root.get_str("d") == "Runner/Info.plist"


def test_unquoted_value_stops_before_comment():
    root = parse("{ fileRef = 97C146FD1CF9000F007C117D /* Main.storyboard */; }")
    assert root.get_str("fileRef") == "97C146FD1CF9000F007C117D"


@pytest.mark.parametrize(
    "text",
    [
        "{ a = b; ",
        "{ a = b }",
        '{ a = "open; }',
        "{ a = ( b c ); }",
        "{ a = b; } trailing",
        "{ /* never closed }",
    ],
)
def test_malformed_input_raises(text):
    with pytest.raises(PBXParseError):
        parse(text)


def test_parse_error_reports_line():
    with pytest.raises(PBXParseError) as excinfo:
        parse("{\n a = b;\n c = ;\n}")
    assert excinfo.value.line == 3


def test_render_without_edits_is_identity(runner_project):
    doc = Document.from_text(runner_project)
    assert not doc.changed
    assert doc.render() == runner_project


def test_set_string_only_touches_the_value_span(runner_project):
    doc = Document.from_text(runner_project)
    configuration = next(c for c in doc.build_configurations() if c.object_id == "97C147061CF9000F007C117D")
    doc.set_string(configuration.settings.get("PRODUCT_NAME"), "My App")
    rendered = doc.render()
    assert rendered.replace('PRODUCT_NAME = "My App";', 'PRODUCT_NAME = "$(TARGET_NAME)";', 1) == runner_project


def test_set_setting_inserts_with_matching_indentation(runner_project):
    doc = Document.from_text(runner_project)
    project_level = next(c for c in doc.build_configurations() if c.target_kind == "PBXProject")
    doc.set_setting(project_level.settings, "ENABLE_BITCODE", "NO")
    rendered = doc.render()
    assert "\t\t\t\tSDKROOT = iphoneos;\n\t\t\t\tENABLE_BITCODE = NO;\n\t\t\t};" in rendered
    reparsed = Document.from_text(rendered)
    settings = next(c for c in reparsed.build_configurations() if c.target_kind == "PBXProject").settings
    assert settings.get_str("ENABLE_BITCODE") == "NO"


def test_set_setting_into_single_line_dict():
    doc = Document.from_text("{ objects = { a = { isa = X; }; }; rootObject = a; }")
    node = doc.objects.get("a")
    doc.set_setting(node, "name", "Release")
    assert Document.from_text(doc.render()).objects.get("a").get_str("name") == "Release"


def test_build_configurations_resolve_owning_targets(runner_project):
    doc = Document.from_text(runner_project)
    labels = {c.object_id: (c.target_kind, c.target_name, c.name) for c in doc.build_configurations()}
    assert labels["331C8088294A63A400263BE5"] == ("PBXNativeTarget", "RunnerTests", "Debug")
    assert labels["97C147031CF9000F007C117D"] == ("PBXProject", "Project", "Debug")
    assert labels["97C147071CF9000F007C117D"] == ("PBXNativeTarget", "Runner", "Release")


def test_quote_string():
    assert quote_string("com.example.app") == "com.example.app"
    assert quote_string("com.example.my-app") == '"com.example.my-app"'
    assert quote_string("$(inherited) -w") == '"$(inherited) -w"'
    assert quote_string('say "hi"') == '"say \\"hi\\""'
    assert quote_string("") == '""'


def test_structural_validation(tmp_path, runner_project):
    validate_structure(runner_project)
    with pytest.raises(PBXParseError):
        validate_structure("{ archiveVersion = 1; }")
    good = tmp_path / "good.pbxproj"
    good.write_text(runner_project, encoding="utf-8")
    bad = tmp_path / "bad.pbxproj"
    bad.write_text(runner_project[: len(runner_project) // 2], encoding="utf-8")
    assert is_structurally_valid(good)
    assert not is_structurally_valid(bad)
    assert not is_structurally_valid(tmp_path / "missing.pbxproj")


def test_string_nodes_remember_quoting():
    root = parse('{ a = "quoted"; b = bare; }')
    assert isinstance(root.get("a"), PBXString) and root.get("a").quoted
    assert not root.get("b").quoted
