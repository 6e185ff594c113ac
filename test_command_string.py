from shared.command_string import (
    create_command_string,
    matches_prefix,
    normalize_command_name,
    parse_command_string,
    serialize_command_parts,
    split_command_list,
)


def test_parse_splits_on_unescaped_colons():
    assert parse_command_string("--text:set:hello") == ["--text", "set", "hello"]
    assert parse_command_string("--text:set:a\\:b:c") == ["--text", "set", "a:b", "c"]
    assert parse_command_string("a\\\\:b") == ["a\\", "b"]
    assert parse_command_string("") == [""]


def test_serialize_is_inverse_of_parse_for_awkward_parts():
    parts = ["--cmd", "x:y", "back\\slash", "", "trailing\\", "::"]
    assert parse_command_string(serialize_command_parts(parts)) == parts


def test_create_command_string_adds_marker_and_escapes():
    assert create_command_string("text", "set", "a:b") == "--text:set:a\\:b"
    assert create_command_string("--toggle") == "--toggle"


def test_normalize_command_name():
    assert normalize_command_name(" toggle ") == "--toggle"
    assert normalize_command_name("--toggle") == "--toggle"
    assert normalize_command_name("") == ""


def test_prefix_matches_only_on_part_boundary():
    assert matches_prefix("--ns:set", "--ns:set")
    assert matches_prefix("--ns:set:x", "--ns:set")
    assert not matches_prefix("--ns:setX", "--ns:set")
    assert not matches_prefix("--ns", "--ns:set")
    # Prefix ending in an escape: the following colon is literal.
    assert not matches_prefix("--a\\:b", "--a\\")


def test_split_command_list_honors_escaped_commas():
    assert split_command_list("--a:x\\,y, --b ,, --c") == ["--a:x,y", "--b", "--c"]
    assert split_command_list("--text:set:a\\:b") == ["--text:set:a\\:b"]
    assert split_command_list(None) == []
    assert split_command_list("  ") == []
