"""
MCP Resource Manager implementation.
This module provides the registry of static resources and resource templates,
URI resolution, listing and argument completion.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from journal_mcp.core.protocol_handler import normalize_error
from journal_mcp.core.types import ReadResourceResult, ResourceListing
from journal_mcp.core.uri_template import UriTemplate
from journal_mcp.error_handling.exceptions import (
    ConfigurationError, DuplicateNameError, INTERNAL_ERROR, InvalidParamsError,
    JournalMCPError, ResourceNotFoundError,
)

logger = logging.getLogger(__name__)

CompleteCallback = Callable[[Any, str], Awaitable[List[str]]]
ListCallback = Callable[[Any], Awaitable[List[ResourceListing]]]


@dataclass
class ResourceDescriptor:
    """A static resource addressed by an exact URI."""
    name: str
    uri: str
    handler: Callable[[Any, str], Awaitable[ReadResourceResult]]
    title: Optional[str] = None
    description: Optional[str] = None
    mime_type: Optional[str] = None

    def to_listing(self) -> Dict[str, Any]:
        return ResourceListing(
            uri=self.uri,
            name=self.name,
            title=self.title,
            description=self.description,
            mime_type=self.mime_type,
        ).to_wire()


@dataclass
class ResourceTemplateDescriptor:
    """A family of resources addressed by a ``{param}`` URI template."""
    name: str
    uri_template: str
    handler: Callable[[Any, str, Dict[str, str]], Awaitable[ReadResourceResult]]
    title: Optional[str] = None
    description: Optional[str] = None
    mime_type: Optional[str] = None
    list_callback: Optional[ListCallback] = None
    complete_callbacks: Dict[str, CompleteCallback] = field(default_factory=dict)

    def __post_init__(self):
        self.template = UriTemplate(self.uri_template)
        unknown = [key for key in self.complete_callbacks if key not in self.template.params]
        if unknown:
            raise ConfigurationError(
                f"Completion callbacks for {self.uri_template} name unknown parameters: {', '.join(unknown)}"
            )

    def to_listing(self) -> Dict[str, Any]:
        listing: Dict[str, Any] = {"name": self.name, "uriTemplate": self.uri_template}
        if self.title:
            listing["title"] = self.title
        if self.description:
            listing["description"] = self.description
        if self.mime_type:
            listing["mimeType"] = self.mime_type
        return listing


class ResourceManager:
    """
    Manages server resources.
    Static resources are matched by exact URI before templates; templates are
    tried in registration order and the first match wins.
    """

    def __init__(self, on_change: Optional[Callable[[], None]] = None):
        """
        Initialize the resource manager.

        Args:
            on_change: Called after every successful registration
        """
        self.resources: Dict[str, ResourceDescriptor] = {}
        self.templates: Dict[str, ResourceTemplateDescriptor] = {}
        self._on_change = on_change

    def register_resource(self, resource: ResourceDescriptor) -> None:
        """
        Register a static resource.

        Args:
            resource: Resource to register

        Raises:
            DuplicateNameError: If the URI or name is already registered
        """
        if resource.uri in self.resources:
            raise DuplicateNameError("Resource", resource.uri)
        if self._name_taken(resource.name):
            raise DuplicateNameError("Resource", resource.name)
        self.resources[resource.uri] = resource
        logger.info(f"Registered resource: {resource.uri}")
        if self._on_change:
            self._on_change()

    def register_resource_template(self, template: ResourceTemplateDescriptor) -> None:
        """
        Register a resource template.

        Args:
            template: Template to register

        Raises:
            DuplicateNameError: If the name is already registered
        """
        if self._name_taken(template.name):
            raise DuplicateNameError("Resource template", template.name)
        for existing in self.templates.values():
            if existing.template.shape == template.template.shape:
                logger.warning(
                    f"Resource template {template.uri_template} is shadowed by {existing.uri_template}"
                )
                break
        self.templates[template.name] = template
        logger.info(f"Registered resource template: {template.uri_template}")
        if self._on_change:
            self._on_change()

    def _name_taken(self, name: str) -> bool:
        return name in self.templates or any(r.name == name for r in self.resources.values())

    @property
    def has_listable_templates(self) -> bool:
        return any(t.list_callback is not None for t in self.templates.values())

    @property
    def has_completions(self) -> bool:
        return any(t.complete_callbacks for t in self.templates.values())

    def resolve(self, uri: str) -> Tuple[Union[ResourceDescriptor, ResourceTemplateDescriptor], Dict[str, str]]:
        """
        Resolve a URI to its descriptor.

        Args:
            uri: Concrete URI

        Returns:
            Tuple: The matching descriptor and the extracted template parameters

        Raises:
            ResourceNotFoundError: If nothing matches
        """
        if uri in self.resources:
            return self.resources[uri], {}
        for template in self.templates.values():
            params = template.template.match(uri)
            if params is not None:
                return template, params
        raise ResourceNotFoundError(uri)

    async def read_resource(self, ctx: Any, uri: str) -> ReadResourceResult:
        """
        Read a resource.

        Raises:
            ResourceNotFoundError: If no resource or template matches
            JournalMCPError: With an internal error code if the handler fails
        """
        descriptor, params = self.resolve(uri)
        try:
            if isinstance(descriptor, ResourceTemplateDescriptor):
                return await descriptor.handler(ctx, uri, params)
            return await descriptor.handler(ctx, uri)
        except Exception as e:
            logger.error(f"Error reading resource {uri}: {e}")
            raise JournalMCPError(normalize_error(e), code=INTERNAL_ERROR, original_exception=e)

    async def list_resources(self, ctx: Any) -> List[Dict[str, Any]]:
        """
        List concrete resources.

        Static resources come first, followed by the output of each listable
        template in registration order.
        """
        listings = [resource.to_listing() for resource in self.resources.values()]
        for template in self.templates.values():
            if template.list_callback is None:
                continue
            for item in await template.list_callback(ctx):
                listings.append(item.to_wire())
        return listings

    def list_resource_templates(self) -> List[Dict[str, Any]]:
        return [template.to_listing() for template in self.templates.values()]

    def get_template_by_uri(self, uri_template: str) -> Optional[ResourceTemplateDescriptor]:
        for template in self.templates.values():
            if template.uri_template == uri_template:
                return template
        return None

    async def complete(self, ctx: Any, uri_template: str, argument: str, partial: str) -> List[str]:
        """
        Complete a template parameter.

        Args:
            ctx: Agent context
            uri_template: The template's URI, as listed by resources/templates/list
            argument: Parameter name
            partial: Value typed so far

        Returns:
            List[str]: Candidate values; empty when the parameter has no callback

        Raises:
            InvalidParamsError: If no template has that URI
        """
        template = self.get_template_by_uri(uri_template)
        if template is None:
            raise InvalidParamsError(f"Unknown resource template: {uri_template}")
        callback = template.complete_callbacks.get(argument)
        if callback is None:
            return []
        return list(await callback(ctx, partial))
