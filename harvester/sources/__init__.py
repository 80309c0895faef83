"""Page automation backends the pipeline drives through ``SourceCapability``."""

from .base import SourceCapability, SourceHandle
from .playwright_source import PlaywrightHandle, PlaywrightSource

__all__ = ["PlaywrightHandle", "PlaywrightSource", "SourceCapability", "SourceHandle"]
