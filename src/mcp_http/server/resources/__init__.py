from .base import Resource
from .resource_manager import ResourceManager

__all__ = ["Resource", "ResourceManager"]
