"""
Tests for MCP tool definitions and dispatch
Copyright 2025 Jurden Bruce
"""

import json

from wake_memory.mcp_tools import get_tool_definitions, handle_tool_call

TOOL_NAMES = {
    "save_context",
    "load_context",
    "search_context",
    "reconstruct_reasoning",
    "build_causal_chain",
    "get_causality_stats",
    "get_memory_stats",
    "recalculate_memory_tiers",
    "prune_expired_contexts",
    "update_predictions",
    "get_high_value_contexts",
    "get_propagation_stats",
}


async def call(service, name, **arguments):
    content = await handle_tool_call(name, arguments, service)
    assert len(content) == 1
    assert content[0].type == "text"
    return json.loads(content[0].text)


def test_tool_definitions():
    tools = get_tool_definitions()

    assert {t.name for t in tools} == TOOL_NAMES
    for tool in tools:
        assert tool.inputSchema["type"] == "object"
        assert tool.description


async def test_save_then_load(service, clock):
    saved = await call(service, "save_context", project="wake", content="picked sqlite", action_type="decision")
    assert saved["success"] is True
    assert saved["causality"]["action_type"] == "decision"

    loaded = await call(service, "load_context", project="wake", limit=5)
    assert loaded["count"] == 1
    assert loaded["contexts"][0]["id"] == saved["snapshot_id"]
    assert "predicted" not in loaded
    await service.memory.drain()


async def test_load_with_predictions(service):
    await call(service, "save_context", project="wake", content="notes")

    loaded = await call(service, "load_context", project="wake", include_predicted=True)

    assert loaded["predicted"] == []
    await service.memory.drain()


async def test_search_and_reasoning(service):
    saved = await call(service, "save_context", project="wake", content="refactor parser", rationale="too slow")

    found = await call(service, "search_context", query="parser")
    assert found["count"] == 1

    reasoning = await call(service, "reconstruct_reasoning", snapshot_id=saved["snapshot_id"])
    assert "**Rationale**: too slow" in reasoning["reasoning"]
    await service.memory.drain()


async def test_causal_chain_and_stats(service, clock):
    root = await call(service, "save_context", project="wake", content="root")
    clock.advance(minutes=5)
    child = await call(service, "save_context", project="wake", content="child", caused_by=root["snapshot_id"])

    chain = await call(service, "build_causal_chain", snapshot_id=child["snapshot_id"])
    assert chain["length"] == 2
    assert chain["terminated"] is True
    assert chain["chain"][0]["id"] == root["snapshot_id"]

    causality = await call(service, "get_causality_stats", project="wake")
    assert causality["root_causes"] == 1

    memory = await call(service, "get_memory_stats", project="wake")
    assert memory["total"] == 2
    assert memory["active"] == 2


async def test_maintenance_tools(service, clock):
    await call(service, "save_context", project="wake", content="old")
    clock.advance(days=31)

    assert (await call(service, "recalculate_memory_tiers"))["updated"] == 1
    assert (await call(service, "prune_expired_contexts", limit=10))["deleted"] == 1


async def test_prediction_tools(service, store, clock):
    saved = await call(service, "save_context", project="wake", content="hot")
    for _ in range(100):
        store.update_access_tracking(saved["snapshot_id"], clock())

    updated = await call(service, "update_predictions", project="wake", stale_threshold=12)
    assert updated["updated"] == 1

    high_value = await call(service, "get_high_value_contexts", project="wake")
    assert high_value["count"] == 1
    assert high_value["contexts"][0]["propagation"]["score"] >= 0.6

    stats = await call(service, "get_propagation_stats", project="wake")
    assert stats["total_predicted"] == 1


async def test_unknown_tool(service):
    response = await call(service, "forget_everything")
    assert response["error"] == "Unknown tool: forget_everything"


async def test_missing_argument(service):
    response = await call(service, "save_context", project="wake")
    assert response["error"] == "Missing required argument: content"


async def test_not_found(service):
    response = await call(service, "reconstruct_reasoning", snapshot_id="missing")
    assert response["error"] == "Snapshot not found: missing"
    assert response["snapshot_id"] == "missing"


async def test_invalid_action_type(service, store):
    response = await call(service, "save_context", project="wake", content="x", action_type="daydream")
    assert "daydream" in response["error"]
    assert store.count() == 0
