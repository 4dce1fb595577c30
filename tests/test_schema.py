import pytest

from journal_mcp.error_handling.exceptions import INVALID_PARAMS, SchemaValidationError
from journal_mcp.journal.tools import CREATE_ENTRY_SCHEMA, UPDATE_ENTRY_SCHEMA
from journal_mcp.schema import ArgsSchema, Arg, array, boolean, flag, integer, number, string


def test_required_and_defaults():
    """Test that defaults are filled in and unset optional fields stay absent."""
    values = CREATE_ENTRY_SCHEMA.validate({"title": "Day one", "content": "Hello"})
    assert values == {"title": "Day one", "content": "Hello", "isPrivate": 1, "isFavorite": 0}
    assert "mood" not in values
    assert "tags" not in values


def test_missing_required_field():
    """Test per-field messages for a missing required field."""
    with pytest.raises(SchemaValidationError) as exc_info:
        CREATE_ENTRY_SCHEMA.validate({"title": "No content"})
    error = exc_info.value
    assert error.code == INVALID_PARAMS
    assert [e["field"] for e in error.errors] == ["content"]
    assert error.to_jsonrpc_error()["data"]["errors"] == error.errors


def test_strings_are_not_coerced_to_numbers():
    """Test strict typing of integers."""
    schema = ArgsSchema({"id": integer("The ID")})
    with pytest.raises(SchemaValidationError) as exc_info:
        schema.validate({"id": "1"})
    assert exc_info.value.errors[0]["field"] == "id"


def test_booleans_are_not_numbers():
    """Test that booleans are rejected where integers are expected."""
    schema = ArgsSchema({"id": integer()})
    with pytest.raises(SchemaValidationError):
        schema.validate({"id": True})


def test_flag_range():
    """Test that flags only accept 0 and 1."""
    schema = ArgsSchema({"isPrivate": flag(default=1)})
    assert schema.validate({"isPrivate": 0}) == {"isPrivate": 0}
    with pytest.raises(SchemaValidationError):
        schema.validate({"isPrivate": 2})


def test_array_items_are_validated():
    """Test that array items are validated strictly."""
    with pytest.raises(SchemaValidationError) as exc_info:
        CREATE_ENTRY_SCHEMA.validate({"title": "t", "content": "c", "tags": [1, "2"]})
    assert exc_info.value.errors[0]["field"] == "tags.1"


def test_unknown_keys_are_dropped():
    """Test that unknown keys do not reach the handler."""
    values = ArgsSchema({"name": string()}).validate({"name": "work", "color": "red"})
    assert values == {"name": "work"}


@pytest.mark.parametrize("payload", [[1, 2], "text", 3])
def test_non_object_payload_is_rejected(payload):
    """Test rejection of argument payloads that are not objects."""
    with pytest.raises(SchemaValidationError):
        ArgsSchema({"name": string()}).validate(payload)


def test_missing_arguments_count_as_empty():
    """Test that a missing arguments object validates like an empty one."""
    assert ArgsSchema().validate(None) == {}


def test_null_and_absent_stay_distinct():
    """Test that an explicit null survives validation while an absent field does not appear."""
    assert UPDATE_ENTRY_SCHEMA.validate({"id": 1, "mood": None}) == {"id": 1, "mood": None}
    assert UPDATE_ENTRY_SCHEMA.validate({"id": 1}) == {"id": 1}


def test_null_rejected_for_non_nullable_field():
    """Test that null is only accepted by nullable fields."""
    with pytest.raises(SchemaValidationError):
        UPDATE_ENTRY_SCHEMA.validate({"id": 1, "title": None})


def test_to_json_schema():
    """Test JSON Schema export."""
    schema = CREATE_ENTRY_SCHEMA.to_json_schema()
    assert schema["type"] == "object"
    assert schema["additionalProperties"] is False
    assert schema["required"] == ["title", "content"]
    assert schema["properties"]["title"] == {"type": "string", "description": "The title of the entry"}
    assert schema["properties"]["isPrivate"]["type"] == "integer"
    assert schema["properties"]["isPrivate"]["minimum"] == 0
    assert schema["properties"]["isPrivate"]["maximum"] == 1
    assert schema["properties"]["isPrivate"]["default"] == 1
    assert schema["properties"]["tags"]["type"] == "array"
    assert schema["properties"]["tags"]["items"] == {"type": "integer"}


def test_nullable_json_schema():
    """Test that nullable fields export a type union with null."""
    schema = UPDATE_ENTRY_SCHEMA.to_json_schema()
    assert schema["properties"]["mood"]["type"] == ["string", "null"]
    assert schema["required"] == ["id"]


def test_to_prompt_arguments():
    """Test prompt argument listing."""
    schema = ArgsSchema({"entryId": string("The entry"), "style": string(optional=True)})
    assert schema.to_prompt_arguments() == [
        {"name": "entryId", "required": True, "description": "The entry"},
        {"name": "style", "required": False},
    ]


def test_other_node_types():
    """Test number, boolean and enum nodes."""
    schema = ArgsSchema({
        "score": number(),
        "done": boolean(optional=True),
        "kind": string(enum=["a", "b"], optional=True),
    })
    assert schema.validate({"score": 1.5, "done": False}) == {"score": 1.5, "done": False}
    assert schema.to_json_schema()["properties"]["kind"]["enum"] == ["a", "b"]
    with pytest.raises(SchemaValidationError):
        schema.validate({"score": "high"})


def test_invalid_nodes():
    """Test that malformed schema nodes are rejected."""
    with pytest.raises(ValueError):
        Arg("date")
    with pytest.raises(ValueError):
        Arg("array")
    assert "tags" in ArgsSchema({"tags": array(integer())})
