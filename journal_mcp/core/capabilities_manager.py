"""
Capabilities Manager implementation for the Journal MCP Server.
This module aggregates the tool, resource and prompt registries and decides
which capability groups the server declares.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from journal_mcp.core.types import ServerCapabilities
from journal_mcp.error_handling.exceptions import InvalidParamsError
from journal_mcp.prompts.prompt_manager import PromptDescriptor, PromptManager
from journal_mcp.resources.resource_manager import (
    ResourceDescriptor, ResourceManager, ResourceTemplateDescriptor,
)
from journal_mcp.tools.tool_manager import ToolDescriptor, ToolManager

logger = logging.getLogger(__name__)

CAPABILITY_GROUPS = ("tools", "resources", "prompts", "completions")

# Completion responses carry at most this many values
MAX_COMPLETION_VALUES = 100


class CapabilitiesManager:
    """Manages registered capabilities and feature flags."""

    def __init__(self, overrides: Optional[Dict[str, bool]] = None):
        """
        Initialize capabilities manager.

        Args:
            overrides: Explicit enable (True) or disable (False) per capability group
        """
        self.feature_flags: Dict[str, bool] = dict(overrides or {})
        unknown = set(self.feature_flags) - set(CAPABILITY_GROUPS)
        if unknown:
            logger.warning(f"Ignoring unknown capability overrides: {', '.join(sorted(unknown))}")
        self._listeners: List[Callable[[str], None]] = []
        self.tool_manager = ToolManager(on_change=lambda: self._list_changed("tools"))
        self.resource_manager = ResourceManager(on_change=lambda: self._list_changed("resources"))
        self.prompt_manager = PromptManager(on_change=lambda: self._list_changed("prompts"))

    def add_list_changed_listener(self, listener: Callable[[str], None]) -> Callable[[], None]:
        """
        Register a callback invoked with the group name after each registration.

        Returns:
            Callable[[], None]: Removes the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return remove

    def _list_changed(self, group: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(group)
            except Exception as e:
                logger.error(f"Error notifying list change for {group}: {e}")

    def register_tool(self, tool: ToolDescriptor) -> None:
        self.tool_manager.register_tool(tool)

    def register_resource(self, resource: ResourceDescriptor) -> None:
        self.resource_manager.register_resource(resource)

    def register_resource_template(self, template: ResourceTemplateDescriptor) -> None:
        self.resource_manager.register_resource_template(template)

    def register_prompt(self, prompt: PromptDescriptor) -> None:
        self.prompt_manager.register_prompt(prompt)

    def is_feature_enabled(self, group: str) -> bool:
        """
        Check whether a capability group is declared.

        An explicit override wins; otherwise a group is declared when it has
        something registered.

        Args:
            group: One of tools, resources, prompts, completions

        Returns:
            bool: True if the group is declared
        """
        if group in self.feature_flags:
            return bool(self.feature_flags[group])
        if group == "tools":
            return bool(self.tool_manager.tools)
        if group == "resources":
            return bool(self.resource_manager.resources or self.resource_manager.templates)
        if group == "prompts":
            return bool(self.prompt_manager.prompts)
        if group == "completions":
            return self.resource_manager.has_completions or self.prompt_manager.has_completions
        return False

    def enable_feature(self, group: str) -> None:
        self.feature_flags[group] = True
        logger.info(f"Enabled feature: {group}")

    def disable_feature(self, group: str) -> None:
        self.feature_flags[group] = False
        logger.info(f"Disabled feature: {group}")

    def get_capabilities(self) -> ServerCapabilities:
        """
        Get the capabilities to declare in the initialize response.

        Returns:
            ServerCapabilities: Only the groups that are declared are present
        """
        capabilities = ServerCapabilities()
        if self.is_feature_enabled("tools"):
            capabilities.tools = {"listChanged": True}
        if self.is_feature_enabled("resources"):
            capabilities.resources = {"listChanged": True}
        if self.is_feature_enabled("prompts"):
            capabilities.prompts = {"listChanged": True}
        if self.is_feature_enabled("completions"):
            capabilities.completions = {}
        return capabilities

    async def complete(self, ctx: Any, ref: Dict[str, Any], argument: Dict[str, Any]) -> Dict[str, Any]:
        """
        Resolve a completion request.

        Args:
            ctx: Agent context
            ref: ``{"type": "ref/resource", "uri": ...}`` or ``{"type": "ref/prompt", "name": ...}``
            argument: ``{"name": ..., "value": ...}``

        Returns:
            Dict[str, Any]: The ``completion`` object with values, total and hasMore

        Raises:
            InvalidParamsError: If the reference is malformed or unknown
        """
        ref_type = ref.get("type")
        name = argument.get("name")
        partial = argument.get("value", "")
        if not isinstance(name, str) or not isinstance(partial, str):
            raise InvalidParamsError("Completion argument needs a string name and value")

        if ref_type == "ref/resource" and isinstance(ref.get("uri"), str):
            values = await self.resource_manager.complete(ctx, ref["uri"], name, partial)
        elif ref_type == "ref/prompt" and isinstance(ref.get("name"), str):
            values = await self.prompt_manager.complete(ctx, ref["name"], name, partial)
        else:
            raise InvalidParamsError(f"Unsupported completion reference: {ref_type}")

        return {
            "values": values[:MAX_COMPLETION_VALUES],
            "total": len(values),
            "hasMore": len(values) > MAX_COMPLETION_VALUES,
        }
