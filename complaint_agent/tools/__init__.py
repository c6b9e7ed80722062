from complaint_agent.tools.base import Tool, ToolContext, ToolInvoker, ToolRegistry, ToolResult
from complaint_agent.tools.complaint_tools import COMPLAINT_TOOLS
from complaint_agent.tools.evidence_tools import EVIDENCE_TOOLS
from complaint_agent.tools.session_tools import SESSION_TOOLS
from complaint_agent.tools.tracking_tools import TRACKING_TOOLS


def build_default_registry() -> ToolRegistry:
    """Registry with every built-in tool."""
    return ToolRegistry([*SESSION_TOOLS, *COMPLAINT_TOOLS, *EVIDENCE_TOOLS, *TRACKING_TOOLS])


__all__ = [
    "Tool",
    "ToolContext",
    "ToolInvoker",
    "ToolRegistry",
    "ToolResult",
    "build_default_registry",
]
