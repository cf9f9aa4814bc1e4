from typing import Dict, List, Any, Optional, Sequence


DEFAULT_TOOLS: List[Dict[str, Any]] = [
    {"id": "exec", "name": "Exec", "description": "Run a shell command", "category": "system"},
    {"id": "process", "name": "Process", "description": "Manage background processes", "category": "system"},
    {"id": "read", "name": "Read", "description": "Read a file from the workspace", "category": "files"},
    {"id": "write", "name": "Write", "description": "Write a file to the workspace", "category": "files"},
    {"id": "edit", "name": "Edit", "description": "Edit part of a file", "category": "files"},
    {"id": "apply_patch", "name": "Apply Patch", "description": "Apply a unified diff", "category": "files"},
    {"id": "web_search", "name": "Web Search", "description": "Search the web for information", "category": "search"},
    {"id": "web_fetch", "name": "Web Fetch", "description": "Fetch and read a web page", "category": "search"},
    {"id": "memory_search", "name": "Memory Search", "description": "Search long-term memory", "category": "memory"},
    {"id": "memory_get", "name": "Memory Get", "description": "Fetch a stored memory by id", "category": "memory"},
    {"id": "message", "name": "Message", "description": "Send a message to the user", "category": "communication"},
]


def apply_tool_allowlist(authorized: Sequence[str], allowlist: Optional[Sequence[str]]) -> List[str]:
    """Final, most restrictive tool filter for a turn.

    Runs after authorization and security filtering. It only removes tools:
    anything not already in ``authorized`` stays out even if the allowlist
    names it. ``None`` means no restriction.
    """
    if allowlist is None:
        return list(authorized)

    allowed = set(allowlist)
    return [tool_id for tool_id in authorized if tool_id in allowed]


class ToolRegistry:
    """Registry for managing available tools"""

    def __init__(self, tools: Optional[List[Dict[str, Any]]] = None):
        self.tools: Dict[str, Dict[str, Any]] = {}

        for tool in DEFAULT_TOOLS if tools is None else tools:
            self.register_tool(tool)

    def register_tool(self, tool_config: Dict[str, Any]):
        """Register a new tool"""

        tool = {"category": "general", **tool_config}
        self.tools[tool["id"]] = tool

    def get_available_tools(self) -> List[Dict[str, Any]]:
        """Get all available tools"""

        return list(self.tools.values())

    def get_tool_info(self, tool_id: str) -> Optional[Dict[str, Any]]:
        """Get information about a specific tool"""

        return self.tools.get(tool_id)

    def tools_for_turn(self, authorized: Sequence[str], allowlist: Optional[Sequence[str]]) -> List[Dict[str, Any]]:
        """Descriptors of the registered tools left after authorization and the plan's allowlist"""

        descriptors = []
        for tool_id in apply_tool_allowlist(authorized, allowlist):
            info = self.get_tool_info(tool_id)
            if info is not None:
                descriptors.append(info)
        return descriptors
