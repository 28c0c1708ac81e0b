"""Resource manager functionality."""

from typing import Any

from mcp_http.server.resources.base import Resource
from mcp_http.server.utilities.logging import get_logger

logger = get_logger(__name__)


class ResourceManager:
    """Manages the resource registry."""

    def __init__(self, warn_on_duplicate_resources: bool = True):
        self._resources: dict[str, Resource] = {}
        self.warn_on_duplicate_resources = warn_on_duplicate_resources

    def add_resource(self, resource: Resource) -> Resource:
        """Add a resource to the manager.

        Args:
            resource: A Resource instance to add

        Returns:
            The added resource. If a resource with the same URI already exists,
            returns the existing resource.
        """
        logger.debug(
            "Adding resource",
            extra={"uri": resource.uri, "resource_name": resource.name},
        )
        existing = self._resources.get(resource.uri)
        if existing:
            if self.warn_on_duplicate_resources:
                logger.warning(f"Resource already exists: {resource.uri}")
            return existing
        self._resources[resource.uri] = resource
        return resource

    def add_value(
        self,
        uri: str,
        value: Any,
        name: str | None = None,
        description: str = "",
        mime_type: str | None = None,
    ) -> Resource:
        return self.add_resource(
            Resource(uri=uri, value=value, name=name, description=description, mime_type=mime_type)
        )

    def get_resource(self, uri: str) -> Resource | None:
        """Get resource by URI (exact match)."""
        return self._resources.get(uri)

    def list_resources(self) -> list[Resource]:
        """List all registered resources."""
        logger.debug("Listing resources", extra={"count": len(self._resources)})
        return list(self._resources.values())
