"""
Tool registry and invoker.

A tool is a named async function with a pydantic argument model. The
model's JSON schema is what the completion service sees, and it is
also what the invoker validates raw arguments against before the
handler runs, so a handler never receives missing or ill-typed input.

Usage:
    registry = ToolRegistry([get_complaint_status_tool])
    invoker = ToolInvoker(registry)
    result = await invoker.invoke("get_complaint_status", {"tracking_number": "OMB-..."}, ctx)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional

from pydantic import BaseModel, ValidationError

from complaint_agent.errors import StoreUnavailable
from complaint_agent.services.complaints import ComplaintService
from complaint_agent.services.tracking import TrackingService
from complaint_agent.store.blob_store import BlobStore
from complaint_agent.store.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """Everything a tool may touch, injected per call."""
    sessions: SessionStore
    complaints: ComplaintService
    tracking: TrackingService
    blobs: BlobStore
    session_id: Optional[str] = None


@dataclass
class ToolResult:
    """Uniform tool outcome. Failures are values, never exceptions."""
    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    message: str = ""

    @classmethod
    def ok(cls, message: str = "", **data: Any) -> "ToolResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str, message: str, **data: Any) -> "ToolResult":
        return cls(success=False, data=data, error=error, message=message)


ToolHandler = Callable[[Any, ToolContext], Awaitable[ToolResult]]


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    args_model: type[BaseModel]
    handler: ToolHandler
    # Arguments filled in by the caller, never by the model.
    hidden_args: frozenset[str] = frozenset({"session_id"})

    @property
    def json_schema(self) -> dict[str, Any]:
        """The argument schema as exposed to the completion service."""
        schema = self.args_model.model_json_schema()
        schema["properties"] = {
            k: v for k, v in schema.get("properties", {}).items() if k not in self.hidden_args
        }
        if "required" in schema:
            schema["required"] = [r for r in schema["required"] if r not in self.hidden_args]
        return schema

    def definition(self) -> dict[str, Any]:
        """OpenAI function-calling definition."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.json_schema,
            },
        }


class ToolRegistry:
    """Name-indexed collection of tools."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        logger.debug("Tool registered: %s", tool.name)

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[dict[str, Any]]:
        return [tool.definition() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err["loc"]) or "arguments"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


class ToolInvoker:
    """Validates arguments and runs tools. ``invoke`` never raises."""

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    async def invoke(
        self, name: str, raw_args: Optional[dict[str, Any]], context: ToolContext
    ) -> ToolResult:
        tool = self.registry.get(name)
        if tool is None:
            logger.warning("Unknown tool requested: %s", name)
            return ToolResult.fail("unknown_tool", f"Unknown tool: {name}")

        try:
            args = tool.args_model.model_validate(raw_args or {})
        except ValidationError as exc:
            detail = _describe_validation_error(exc)
            logger.info("Tool '%s' rejected arguments: %s", name, detail)
            return ToolResult.fail("validation_error", detail)

        try:
            result = await tool.handler(args, context)
        except StoreUnavailable as exc:
            logger.error("Tool '%s' store failure: %s", name, exc)
            return ToolResult.fail(
                "store_unavailable", "The service is temporarily unavailable. Please try again later."
            )
        except Exception:
            logger.exception("Tool '%s' failed", name)
            return ToolResult.fail("internal_error", "Something went wrong while processing that.")

        logger.debug("Tool '%s' -> success=%s", name, result.success)
        return result
