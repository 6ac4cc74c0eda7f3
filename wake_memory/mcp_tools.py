"""
MCP Tool Definitions and Handlers for Wake Memory
Copyright 2025 Jurden Bruce

All tool responses return JSON for AI consumption, not human-formatted text.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List

from mcp.types import Tool, TextContent

from .errors import SnapshotNotFoundError, WakeMemoryError
from .models import ActionType


class DateTimeEncoder(json.JSONEncoder):
    """JSON encoder that handles datetime objects"""
    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)

logger = logging.getLogger("wake-memory.mcp-tools")

PROJECT_PROPERTY = {"type": "string", "description": "Project identifier"}
SNAPSHOT_ID_PROPERTY = {"type": "string", "description": "ID of the context snapshot"}


def get_tool_definitions() -> List[Tool]:
    """Return list of available MCP tools"""
    return [
        Tool(
            name="save_context",
            description="""Save conversation context for a project.

The content is summarized and tagged, then stored with causal metadata: why it was saved (rationale), what kind of action produced it (action_type) and, optionally, which earlier snapshot directly caused it (caused_by). Snapshots saved in the same project during the last hour are linked automatically as dependencies.
""",
            inputSchema={
                "type": "object",
                "properties": {
                    "project": PROJECT_PROPERTY,
                    "content": {"type": "string", "description": "Context content to save"},
                    "source": {"type": "string", "description": "Source of the context", "default": "mcp"},
                    "metadata": {"type": "object", "description": "Additional metadata", "default": {}},
                    "action_type": {
                        "type": "string",
                        "enum": [a.value for a in ActionType],
                        "description": "Kind of action that produced this context",
                        "default": ActionType.CONVERSATION.value,
                    },
                    "rationale": {"type": "string", "description": "Why this context is being saved"},
                    "caused_by": {"type": "string", "description": "ID of the snapshot that directly caused this one"},
                },
                "required": ["project", "content"],
            },
        ),
        Tool(
            name="load_context",
            description="Load the most recent contexts for a project (at most 10). Loaded contexts are marked as accessed, which keeps them in the active memory tier. Set include_predicted to also receive high-value contexts likely to be needed next.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project": PROJECT_PROPERTY,
                    "limit": {"type": "integer", "description": "Maximum contexts to return (1-10)", "default": 1},
                    "include_predicted": {
                        "type": "boolean",
                        "description": "Also return pre-fetched high-value contexts",
                        "default": False,
                    },
                },
                "required": ["project"],
            },
        ),
        Tool(
            name="search_context",
            description="Search contexts by keyword over summaries and tags, newest first.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search query"},
                    "project": {"type": "string", "description": "Project to search within"},
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="reconstruct_reasoning",
            description="Explain WHY a context was created: its action type, rationale, direct cause and dependencies.",
            inputSchema={
                "type": "object",
                "properties": {"snapshot_id": SNAPSHOT_ID_PROPERTY},
                "required": ["snapshot_id"],
            },
        ),
        Tool(
            name="build_causal_chain",
            description="Trace decision history backwards through caused_by links. Returns the chain root first, flagging cycles and missing parents.",
            inputSchema={
                "type": "object",
                "properties": {"snapshot_id": {"type": "string", "description": "Starting snapshot ID to trace backwards from"}},
                "required": ["snapshot_id"],
            },
        ),
        Tool(
            name="get_causality_stats",
            description="Get analytics on causal relationships for a project: action type distribution, root causes and average chain length.",
            inputSchema={
                "type": "object",
                "properties": {"project": PROJECT_PROPERTY},
                "required": ["project"],
            },
        ),
        Tool(
            name="get_memory_stats",
            description="View memory tier distribution for a project (active < 1h, recent < 24h, archived < 30d, expired).",
            inputSchema={
                "type": "object",
                "properties": {"project": PROJECT_PROPERTY},
                "required": ["project"],
            },
        ),
        Tool(
            name="recalculate_memory_tiers",
            description="Update tier classifications based on the current time. Returns how many snapshots changed tier.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project": {"type": "string", "description": "Project to recalculate (all projects if omitted)"},
                },
            },
        ),
        Tool(
            name="prune_expired_contexts",
            description="Delete old, unused contexts in the expired tier, oldest first.",
            inputSchema={
                "type": "object",
                "properties": {
                    "limit": {"type": "integer", "description": "Maximum number of contexts to prune", "default": 100},
                },
            },
        ),
        Tool(
            name="update_predictions",
            description="Refresh prediction scores for a project's contexts whose predictions are missing or stale.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project": PROJECT_PROPERTY,
                    "stale_threshold": {"type": "number", "description": "Hours before a prediction is stale", "default": 24},
                },
                "required": ["project"],
            },
        ),
        Tool(
            name="get_high_value_contexts",
            description="Retrieve contexts most likely to be accessed next, highest prediction score first.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project": PROJECT_PROPERTY,
                    "min_score": {"type": "number", "description": "Minimum prediction score", "default": 0.6},
                    "limit": {"type": "integer", "description": "Maximum contexts to return", "default": 5},
                },
                "required": ["project"],
            },
        ),
        Tool(
            name="get_propagation_stats",
            description="Get analytics on prediction quality and patterns for a project.",
            inputSchema={
                "type": "object",
                "properties": {"project": PROJECT_PROPERTY},
                "required": ["project"],
            },
        ),
    ]


def _require(arguments: Dict[str, Any], key: str) -> Any:
    value = arguments.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(f"Missing required argument: {key}")
    return value


def _json_response(payload: Any) -> List[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2, cls=DateTimeEncoder))]


async def handle_tool_call(name: str, arguments: Dict[str, Any], service) -> List[TextContent]:
    """
    Handle MCP tool calls with JSON responses

    Args:
        name: Tool name
        arguments: Tool arguments
        service: ContextService instance

    Returns:
        List of TextContent with JSON-encoded responses
    """
    arguments = arguments or {}
    now = service.clock()

    try:
        if name == "save_context":
            snapshot = await service.save_context(
                project=_require(arguments, "project"),
                content=_require(arguments, "content"),
                source=arguments.get("source"),
                metadata=arguments.get("metadata"),
                action_type=arguments.get("action_type") or ActionType.CONVERSATION.value,
                rationale=arguments.get("rationale"),
                caused_by=arguments.get("caused_by"),
            )
            return _json_response({
                "success": True,
                "snapshot_id": snapshot.id,
                "summary": snapshot.summary,
                "tags": snapshot.tags,
                "memory_tier": snapshot.memory_tier.value,
                "causality": snapshot.causality.to_dict() if snapshot.causality else None,
            })

        elif name == "load_context":
            project = _require(arguments, "project")
            snapshots = await service.load_context(project, arguments.get("limit", 1))
            response = {
                "project": project,
                "count": len(snapshots),
                "contexts": [s.to_api_dict(now) for s in snapshots],
            }
            if arguments.get("include_predicted"):
                predicted = await service.prefetch_high_value(project, exclude=[s.id for s in snapshots])
                response["predicted"] = [s.to_api_dict(now) for s in predicted]
            return _json_response(response)

        elif name == "search_context":
            query = _require(arguments, "query")
            snapshots = await service.search_context(query, arguments.get("project"))
            return _json_response({
                "query": query,
                "count": len(snapshots),
                "results": [s.to_api_dict(now) for s in snapshots],
            })

        elif name == "reconstruct_reasoning":
            snapshot_id = _require(arguments, "snapshot_id")
            reasoning = await service.reconstruct_reasoning(snapshot_id)
            return _json_response({"snapshot_id": snapshot_id, "reasoning": reasoning})

        elif name == "build_causal_chain":
            chain = await service.build_causal_chain(_require(arguments, "snapshot_id"))
            return _json_response(chain.to_dict())

        elif name == "get_causality_stats":
            return _json_response(await service.get_causality_stats(_require(arguments, "project")))

        elif name == "get_memory_stats":
            project = _require(arguments, "project")
            stats = await service.get_memory_stats(project)
            return _json_response({"project": project, **stats})

        elif name == "recalculate_memory_tiers":
            project = arguments.get("project")
            updated = await service.recalculate_memory_tiers(project)
            return _json_response({"updated": updated, "project": project})

        elif name == "prune_expired_contexts":
            deleted = await service.prune_expired_contexts(arguments.get("limit"))
            return _json_response({"deleted": deleted})

        elif name == "update_predictions":
            project = _require(arguments, "project")
            updated = await service.update_predictions(project, arguments.get("stale_threshold"))
            return _json_response({"project": project, "updated": updated})

        elif name == "get_high_value_contexts":
            project = _require(arguments, "project")
            min_score = arguments.get("min_score", 0.6)
            snapshots = await service.get_high_value_contexts(project, min_score, arguments.get("limit", 5))
            return _json_response({
                "project": project,
                "min_score": min_score,
                "count": len(snapshots),
                "contexts": [s.to_api_dict(now) for s in snapshots],
            })

        elif name == "get_propagation_stats":
            return _json_response(await service.get_propagation_stats(_require(arguments, "project")))

        else:
            return _json_response({"error": f"Unknown tool: {name}"})

    except SnapshotNotFoundError as e:
        logger.warning(f"{name}: {e}")
        return _json_response({"error": str(e), "tool": name, "snapshot_id": e.snapshot_id})
    except (WakeMemoryError, ValueError) as e:
        logger.warning(f"{name} rejected: {e}")
        return _json_response({"error": str(e), "tool": name, "type": type(e).__name__})
    except Exception as e:
        logger.error(f"Tool execution error: {name}: {e}", exc_info=True)
        return _json_response({
            "error": str(e),
            "tool": name,
            "type": type(e).__name__,
        })
