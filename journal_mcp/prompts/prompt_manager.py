"""
Prompt Manager implementation for the Journal MCP Server.
This module provides the prompt registry, prompt rendering and argument completion.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from journal_mcp.core.protocol_handler import normalize_error
from journal_mcp.core.types import GetPromptResult
from journal_mcp.error_handling.exceptions import (
    ConfigurationError, DuplicateNameError, INTERNAL_ERROR, InvalidParamsError, JournalMCPError,
)
from journal_mcp.schema import ArgsSchema

logger = logging.getLogger(__name__)


@dataclass
class PromptDescriptor:
    """Prompt definition."""
    name: str
    description: str
    arguments: ArgsSchema
    handler: Callable[[Any, Dict[str, Any]], Awaitable[GetPromptResult]]
    title: Optional[str] = None
    complete_callbacks: Dict[str, Callable[[Any, str], Awaitable[List[str]]]] = field(default_factory=dict)

    def __post_init__(self):
        unknown = [key for key in self.complete_callbacks if key not in self.arguments]
        if unknown:
            raise ConfigurationError(
                f"Completion callbacks for prompt {self.name} name unknown arguments: {', '.join(unknown)}"
            )

    def to_listing(self) -> Dict[str, Any]:
        listing: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "arguments": self.arguments.to_prompt_arguments(),
        }
        if self.title:
            listing["title"] = self.title
        return listing


class PromptManager:
    """Manages registered prompts."""

    def __init__(self, on_change: Optional[Callable[[], None]] = None):
        self.prompts: Dict[str, PromptDescriptor] = {}
        self._on_change = on_change

    def register_prompt(self, prompt: PromptDescriptor) -> None:
        """
        Register a prompt.

        Args:
            prompt: Prompt to register

        Raises:
            DuplicateNameError: If a prompt with the same name is registered
        """
        if prompt.name in self.prompts:
            raise DuplicateNameError("Prompt", prompt.name)
        self.prompts[prompt.name] = prompt
        logger.info(f"Registered prompt: {prompt.name}")
        if self._on_change:
            self._on_change()

    @property
    def has_completions(self) -> bool:
        return any(p.complete_callbacks for p in self.prompts.values())

    def list_prompts(self) -> List[Dict[str, Any]]:
        return [prompt.to_listing() for prompt in self.prompts.values()]

    async def get_prompt(self, ctx: Any, name: str, arguments: Optional[Dict[str, Any]]) -> GetPromptResult:
        """
        Render a prompt.

        Args:
            ctx: Agent context
            name: Prompt name
            arguments: Raw prompt arguments

        Returns:
            GetPromptResult: The rendered messages

        Raises:
            InvalidParamsError: If the prompt is unknown or the arguments are invalid
            JournalMCPError: With an internal error code if the handler fails
        """
        prompt = self.prompts.get(name)
        if prompt is None:
            raise InvalidParamsError(f"Unknown prompt: {name}")

        args = prompt.arguments.validate(arguments)

        try:
            return await prompt.handler(ctx, args)
        except Exception as e:
            logger.error(f"Error rendering prompt {name}: {e}")
            raise JournalMCPError(normalize_error(e), code=INTERNAL_ERROR, original_exception=e)

    async def complete(self, ctx: Any, name: str, argument: str, partial: str) -> List[str]:
        """
        Complete a prompt argument.

        Raises:
            InvalidParamsError: If the prompt is unknown
        """
        prompt = self.prompts.get(name)
        if prompt is None:
            raise InvalidParamsError(f"Unknown prompt: {name}")
        callback = prompt.complete_callbacks.get(argument)
        if callback is None:
            return []
        return list(await callback(ctx, partial))
