import pytest

from novagfx.address import (
    apply_address_value,
    build_data_address,
    build_element_address,
    build_keyframe_address,
    build_template_address,
    find_named,
    parse_address,
    require_address,
    resolve_address,
    sanitize_name,
    set_address_value,
)
from novagfx.designer import InMemoryDesigner
from novagfx.errors import AddressError


def make_designer() -> InMemoryDesigner:
    return InMemoryDesigner(
        elements=[
            {"id": "e1", "name": "Foo", "content": {"text": "Old", "color": "red"}, "opacity": 1},
            {"id": "e2", "name": "Score Text", "content": {"text": "0"}},
        ],
        templates=[
            {"id": "t1", "name": "Lower Third", "layer_id": "L1"},
            {"id": "t2", "name": "Scorebug", "layer_id": "L2"},
        ],
        layers=[{"id": "L1", "name": "Main"}],
        data_payload=[{"player": "Ann"}, {"player": "Bob"}, {"player": "Cid"}],
        current_record_index=1,
        current_template_id="t1",
        data_display_field="player",
        template_data_cache={
            "t2": {"data_payload": [{"team": "Reds"}, {"team": "Blues"}], "current_record_index": 0, "data_display_field": "team"}
        },
    )


def test_sanitize_name_replaces_whitespace_and_strips_symbols():
    assert sanitize_name("Score Text") == "Score_Text"
    assert sanitize_name("  Lower   Third! ") == "_Lower_Third_"
    assert sanitize_name("a-b.c") == "abc"


def test_parse_built_element_address_round_trips_name():
    for name in ("Score Text", "Foo", "Héllo World 2"):
        parsed = parse_address(build_element_address(name))
        assert parsed is not None
        assert parsed.type == "element"
        assert parsed.name == sanitize_name(name)
        assert parsed.path == ()


def test_parse_namespaced_addresses():
    template = parse_address(build_template_address("Lower Third", "dataIndex"))
    assert (template.type, template.name, template.path) == ("template", "Lower_Third", ("dataIndex",))
    data = parse_address(build_data_address("player"))
    assert (data.type, data.name, data.path) == ("data", "current", ("player",))
    state = parse_address("@state.score")
    assert (state.type, state.name) == ("state", "score")
    keyframe = parse_address(build_keyframe_address("Foo", "in", "Key 1", "opacity"))
    assert keyframe.path == ("animation", "in", "Key_1", "opacity")


def test_parse_address_rejects_non_addresses():
    assert parse_address("Foo") is None
    assert parse_address(None) is None
    assert parse_address(42) is None


def test_find_named_matches_sanitized_and_case_insensitive():
    designer = make_designer()
    assert find_named(designer.elements, "score_text")["id"] == "e2"
    assert find_named(designer.elements, "SCORE_TEXT")["id"] == "e2"
    assert find_named(designer.elements, "Missing") is None


def test_resolve_element_property_and_data():
    designer = make_designer()
    assert resolve_address("@Score_Text.content.text", designer) == "0"
    assert resolve_address("@Foo", designer)["id"] == "e1"
    assert resolve_address("@data.current.player", designer) == "Bob"
    assert resolve_address("@data.Scorebug.team", designer) == "Reds"
    assert resolve_address("@data.t2.team", designer) == "Reds"
    assert resolve_address("@state.score", designer) == "{{state.score}}"


def test_resolve_missing_address_returns_none():
    designer = make_designer()
    assert resolve_address("@Missing", designer) is None
    assert resolve_address("@template.Nope.dataIndex", designer) is None
    assert resolve_address("@data.unknown.field", designer) is None
    assert resolve_address("not-an-address", designer) is None
    assert resolve_address("@Foo.content.text", None) is None


def test_set_element_value_changes_only_target_path():
    designer = make_designer()
    assert set_address_value("@Foo.content.text", "Hi", designer) is True
    foo = designer.get_element("e1")
    assert foo["content"] == {"text": "Hi", "color": "red"}
    assert foo["opacity"] == 1
    assert designer.get_element("e2")["content"]["text"] == "0"
    assert designer.calls[-1] == {"call": "update_element", "element_id": "e1", "patch": {"content": {"text": "Hi"}}}


def test_set_value_on_missing_element_fails_without_raising():
    designer = make_designer()
    assert set_address_value("@Missing.content.text", "Hi", designer) is False
    assert designer.calls == []


def test_set_template_data_index_bounds_checked():
    designer = make_designer()
    assert set_address_value("@template.Lower_Third.dataIndex", 2, designer) is True
    assert designer.current_record_index == 2
    assert set_address_value("@template.Lower_Third.dataIndex", 3, designer) is False
    assert set_address_value("@template.Lower_Third.dataIndex", -1, designer) is False
    assert designer.current_record_index == 2


def test_set_template_data_by_display_value():
    designer = make_designer()
    assert set_address_value("@template.Lower_Third.data", "ann", designer) is True
    assert designer.current_record_index == 0
    assert set_address_value("@template.Scorebug.data", "Blues", designer) is True
    assert designer.template_data_cache["t2"]["current_record_index"] == 1
    assert set_address_value("@template.Scorebug.data", "Greens", designer) is False


def test_state_and_data_writes_are_not_supported_here():
    designer = make_designer()
    assert set_address_value("@state.score", 1, designer) is False
    assert set_address_value("@data.current.player", "Zed", designer) is False


def test_apply_address_value_raises_with_the_reason():
    designer = make_designer()
    with pytest.raises(AddressError) as excinfo:
        apply_address_value("@Missing.content.text", "Hi", designer)
    assert excinfo.value.code == "NGX-1101"
    assert excinfo.value.message == "Element not found: Missing"
    with pytest.raises(AddressError, match="out of range"):
        apply_address_value("@template.Lower_Third.dataIndex", 9, designer)
    with pytest.raises(AddressError, match="not supported"):
        apply_address_value("@state.score", 1, designer)
    assert designer.calls == []


def test_require_address_rejects_plain_strings():
    assert require_address("@Foo.content").name == "Foo"
    with pytest.raises(AddressError) as excinfo:
        require_address("Foo.content")
    assert excinfo.value.diagnostics[0]["code"] == "NGX-1101"
