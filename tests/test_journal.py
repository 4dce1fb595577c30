import getpass
import json

import pytest

from conftest import JsonRpcClient
from journal_mcp.config import ServerConfig
from journal_mcp.error_handling.exceptions import INTERNAL_ERROR, INVALID_PARAMS
from journal_mcp.protocol.memory import MemoryTransport
from journal_mcp.server import create_server


def texts(result):
    return [item["text"] for item in result["content"] if item["type"] == "text"]


def links(result):
    return [item["uri"] for item in result["content"] if item["type"] == "resource_link"]


def embedded(result, index=-1):
    item = [i for i in result["content"] if i["type"] == "resource"][index]
    return item["resource"]["uri"], json.loads(item["resource"]["text"])


async def seed(client):
    await client.call_tool("create_tag", {"name": "work", "description": "Job stuff"})
    await client.call_tool("create_tag", {"name": "fun"})
    await client.call_tool("create_entry", {"title": "Standup", "content": "Talked", "tags": [1]})
    await client.call_tool("create_entry", {"title": "Hike", "content": "Walked", "mood": "happy", "tags": [2]})


# Tools

@pytest.mark.asyncio
async def test_tool_listing(client):
    """Test the listed tools and their input schemas."""
    tools = {t["name"]: t for t in (await client.call("tools/list"))["tools"]}
    assert set(tools) == {
        "create_entry", "get_entry", "list_entries", "update_entry", "delete_entry",
        "create_tag", "get_tag", "list_tags", "update_tag", "delete_tag",
        "add_tag_to_entry", "get_entry_tags",
    }
    create = tools["create_entry"]
    assert create["title"] == "Create Entry"
    assert create["inputSchema"]["type"] == "object"
    assert set(create["inputSchema"]["required"]) == {"title", "content"}
    assert "tags" in create["inputSchema"]["properties"]


@pytest.mark.asyncio
async def test_create_entry(client):
    """Test creating an entry with tags."""
    await client.call_tool("create_tag", {"name": "work"})
    result = await client.call_tool("create_entry", {"title": "Standup", "content": "Talked", "tags": [1]})
    assert texts(result) == ['Entry "Standup" created successfully with ID "1"']
    assert result["content"][1] == {
        "type": "resource_link",
        "uri": "journal://entries/1",
        "name": "Standup",
        "mimeType": "application/json",
    }

    result = await client.call_tool("get_entry", {"id": 1})
    uri, entry = embedded(result)
    assert uri == "journal://entries/1"
    assert entry["title"] == "Standup"
    assert entry["isPrivate"] == 1
    assert entry["isFavorite"] == 0
    assert entry["tags"] == [{"id": 1, "name": "work"}]


@pytest.mark.asyncio
async def test_create_entry_with_unknown_tag_is_atomic(client):
    """Test that a failed tagging leaves no entry behind."""
    result = await client.call_tool("create_entry", {"title": "t", "content": "c", "tags": [99]})
    assert result["isError"] is True
    assert texts(result) == ['Tag with ID "99" not found']
    assert texts(await client.call_tool("list_entries")) == ["Found 0 entries."]


@pytest.mark.asyncio
async def test_create_entry_with_repeated_tags(client, store):
    """Test that a tag id given twice is attached once."""
    await client.call_tool("create_tag", {"name": "work"})
    await client.call_tool("create_tag", {"name": "fun"})
    result = await client.call_tool("create_entry", {"title": "t", "content": "c", "tags": [2, 1, 2, 1]})
    assert "isError" not in result
    assert texts(result) == ['Entry "t" created successfully with ID "1"']
    assert [t.id for t in await store.get_entry_tags(1)] == [2, 1]


@pytest.mark.asyncio
async def test_list_entries(client):
    """Test listing and filtering entries."""
    await seed(client)
    result = await client.call_tool("list_entries")
    assert texts(result) == ["Found 2 entries."]
    assert set(links(result)) == {"journal://entries/1", "journal://entries/2"}

    result = await client.call_tool("list_entries", {"tagIds": [2]})
    assert texts(result) == ["Found 1 entry."]
    assert links(result) == ["journal://entries/2"]


@pytest.mark.asyncio
async def test_update_entry(client):
    """Test partial updates and clearing fields with null."""
    await seed(client)
    result = await client.call_tool("update_entry", {"id": 2, "title": "Long hike", "mood": None, "isFavorite": 1})
    assert texts(result) == ['Entry "Long hike" (ID: 2) updated successfully']
    uri, entry = embedded(result)
    assert uri == "journal://entries/2"
    assert entry["mood"] is None
    assert entry["content"] == "Walked"
    assert entry["isFavorite"] == 1

    result = await client.call_tool("update_entry", {"id": 9, "title": "x"})
    assert result["isError"] is True


@pytest.mark.asyncio
async def test_flags_are_validated(client):
    """Test that flags only accept 0 and 1."""
    response = await client.request("tools/call", {
        "name": "create_entry",
        "arguments": {"title": "t", "content": "c", "isPrivate": 3},
    })
    assert response["error"]["code"] == INVALID_PARAMS
    assert response["error"]["data"]["errors"][0]["field"].startswith("isPrivate")


@pytest.mark.asyncio
async def test_delete_entry(client):
    """Test deleting an entry."""
    await seed(client)
    result = await client.call_tool("delete_entry", {"id": 1})
    assert result["content"] == [{"type": "text", "text": 'Entry "Standup" (ID: 1) deleted successfully'}]
    result = await client.call_tool("get_entry", {"id": 1})
    assert result["isError"] is True


@pytest.mark.asyncio
async def test_tags(client):
    """Test tag create, get, list, update and delete."""
    result = await client.call_tool("create_tag", {"name": "work", "description": "Job stuff"})
    assert texts(result) == ['Tag "work" created successfully with ID "1"']
    assert result["content"][1]["description"] == "Job stuff"

    result = await client.call_tool("create_tag", {"name": "work"})
    assert result["isError"] is True

    uri, tag = embedded(await client.call_tool("get_tag", {"id": 1}))
    assert uri == "journal://tags/1"
    assert tag["name"] == "work"

    result = await client.call_tool("list_tags")
    assert texts(result) == ["Found 1 tag."]
    assert links(result) == ["journal://tags/1"]

    result = await client.call_tool("update_tag", {"id": 1, "description": None})
    assert texts(result) == ['Tag "work" (ID: 1) updated successfully']
    assert embedded(result)[1]["description"] is None

    result = await client.call_tool("delete_tag", {"id": 1})
    assert texts(result) == ['Tag "work" (ID: 1) deleted successfully']
    assert texts(await client.call_tool("list_tags")) == ["Found 0 tags."]


@pytest.mark.asyncio
async def test_add_tag_to_entry(client):
    """Test tagging an entry and reading its tags."""
    await seed(client)
    result = await client.call_tool("add_tag_to_entry", {"entryId": 2, "tagId": 1})
    assert texts(result) == ['Tag "work" (ID: 1) added to entry "Hike" (ID: 2) successfully']
    assert links(result) == ["journal://tags/1", "journal://entries/2"]

    result = await client.call_tool("add_tag_to_entry", {"entryId": 2, "tagId": 1})
    assert result["isError"] is True

    result = await client.call_tool("get_entry_tags", {"entryId": 2})
    assert texts(result) == ["Found 2 tags on entry 2."]
    uri, tags = embedded(result)
    assert uri == "journal://entries/2/tags"
    assert [t["name"] for t in tags] == ["fun", "work"]


# Resources

@pytest.mark.asyncio
async def test_resource_listing(client):
    """Test static resources followed by listed entries and tags."""
    await seed(client)
    resources = (await client.call("resources/list"))["resources"]
    uris = [r["uri"] for r in resources]
    assert uris[:3] == ["journal://tags", "journal://entries", "journal://credits"]
    assert set(uris[3:]) == {"journal://entries/1", "journal://entries/2", "journal://tags/1", "journal://tags/2"}
    work = next(r for r in resources if r["uri"] == "journal://tags/1")
    assert work == {
        "uri": "journal://tags/1",
        "name": "work",
        "description": "Job stuff",
        "mimeType": "application/json",
    }

    templates = (await client.call("resources/templates/list"))["resourceTemplates"]
    assert [t["uriTemplate"] for t in templates] == [
        "journal://entries/{id}/tags",
        "journal://entries/{id}",
        "journal://tags/{id}",
    ]


@pytest.mark.asyncio
async def test_read_resources(client):
    """Test reading static and templated resources."""
    await seed(client)
    result = await client.read_resource("journal://tags")
    contents = result["contents"][0]
    assert contents["uri"] == "journal://tags"
    assert contents["mimeType"] == "application/json"
    assert [t["name"] for t in json.loads(contents["text"])] == ["fun", "work"]

    result = await client.read_resource("journal://entries/1")
    assert json.loads(result["contents"][0]["text"])["tags"] == [{"id": 1, "name": "work"}]

    result = await client.read_resource("journal://entries/1/tags")
    assert [t["name"] for t in json.loads(result["contents"][0]["text"])] == ["work"]

    result = await client.read_resource("journal://tags/2")
    assert json.loads(result["contents"][0]["text"])["name"] == "fun"


@pytest.mark.asyncio
async def test_read_credits(client):
    """Test the plain-text credits resource."""
    result = await client.read_resource("journal://credits")
    assert result["contents"] == [{
        "uri": "journal://credits",
        "mimeType": "text/plain",
        "text": f"This app was created by {getpass.getuser()}",
    }]


@pytest.mark.asyncio
async def test_non_integer_id_is_internal_error(client):
    """Test that a template handler failure is reported as an internal error."""
    response = await client.request("resources/read", {"uri": "journal://entries/abc"})
    assert response["error"]["code"] == INTERNAL_ERROR
    assert response["error"]["message"] == 'Entry ID must be an integer, got "abc"'


@pytest.mark.asyncio
async def test_resource_completion(client):
    """Test completing template parameters."""
    for n in range(12):
        await client.call_tool("create_tag", {"name": f"tag{n}"})
    result = await client.call("completion/complete", {
        "ref": {"type": "ref/resource", "uri": "journal://tags/{id}"},
        "argument": {"name": "id", "value": "1"},
    })
    assert sorted(result["completion"]["values"]) == ["1", "10", "11", "12"]
    assert result["completion"]["total"] == 4
    assert result["completion"]["hasMore"] is False

    response = await client.request("completion/complete", {
        "ref": {"type": "ref/resource", "uri": "journal://nothing/{id}"},
        "argument": {"name": "id", "value": ""},
    })
    assert response["error"]["code"] == INVALID_PARAMS


# Prompts

@pytest.mark.asyncio
async def test_prompt_listing(client):
    """Test the listed prompt and its arguments."""
    prompts = (await client.call("prompts/list"))["prompts"]
    assert [p["name"] for p in prompts] == ["suggest_tags"]
    assert prompts[0]["title"] == "Suggest Tags"
    assert prompts[0]["arguments"][0]["name"] == "entryId"
    assert prompts[0]["arguments"][0]["required"] is True


@pytest.mark.asyncio
async def test_suggest_tags_prompt(client):
    """Test rendering the tag suggestion prompt."""
    await seed(client)
    result = await client.call("prompts/get", {"name": "suggest_tags", "arguments": {"entryId": "1"}})
    messages = result["messages"]
    assert len(messages) == 3
    assert all(m["role"] == "user" for m in messages)

    text = messages[0]["content"]["text"]
    assert "# Standup" in text
    assert "fun:  (2)" in text
    assert "work: Job stuff" not in text
    assert "create_tag" in text
    assert "add_tag_to_entry" in text
    for word in ("get_entry", "list_tags", "look up"):
        assert word not in text

    entry = messages[1]["content"]["resource"]
    assert entry["uri"] == "journal://entries/1"
    assert json.loads(entry["text"])["title"] == "Standup"

    unused = messages[2]["content"]["resource"]
    assert unused["uri"] == "journal://tags"
    assert [t["name"] for t in json.loads(unused["text"])] == ["fun"]


@pytest.mark.asyncio
async def test_suggest_tags_prompt_without_other_tags(client):
    """Test the prompt text when every tag is already applied."""
    await client.call_tool("create_entry", {"title": "t", "content": "c"})
    result = await client.call("prompts/get", {"name": "suggest_tags", "arguments": {"entryId": "1"}})
    assert "I do not have any other tags available." in result["messages"][0]["content"]["text"]


@pytest.mark.asyncio
async def test_suggest_tags_prompt_errors(client):
    """Test prompt argument and handler errors."""
    response = await client.request("prompts/get", {"name": "suggest_tags", "arguments": {"entryId": "7"}})
    assert response["error"]["code"] == INTERNAL_ERROR
    assert response["error"]["message"] == 'Entry with ID "7" not found'

    response = await client.request("prompts/get", {"name": "suggest_tags", "arguments": {}})
    assert response["error"]["code"] == INVALID_PARAMS

    response = await client.request("prompts/get", {"name": "no_such_prompt"})
    assert response["error"]["code"] == INVALID_PARAMS


@pytest.mark.asyncio
async def test_prompt_completion(client):
    """Test completing the entryId prompt argument."""
    await seed(client)
    result = await client.call("completion/complete", {
        "ref": {"type": "ref/prompt", "name": "suggest_tags"},
        "argument": {"name": "entryId", "value": ""},
    })
    assert sorted(result["completion"]["values"]) == ["1", "2"]


# Configuration

@pytest.mark.asyncio
async def test_custom_uri_scheme(store):
    """Test serving the journal under another URI scheme."""
    server, _ = create_server(ServerConfig(database_path=":memory:", uri_scheme="diary"), store=store)
    client_end, server_end = MemoryTransport.create_pair()
    server.connect(server_end)
    client = JsonRpcClient(client_end)
    try:
        await client.initialize()
        result = await client.call_tool("create_tag", {"name": "work"})
        assert links(result) == ["diary://tags/1"]
        result = await client.read_resource("diary://tags/1")
        assert json.loads(result["contents"][0]["text"])["name"] == "work"
        response = await client.request("resources/read", {"uri": "journal://tags/1"})
        assert "error" in response
    finally:
        await client.close()
        await server.close()
