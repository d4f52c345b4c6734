from scenecut.core.config import ConfigLoader, Settings, resolve_tool_paths
from scenecut.core.logging import FlightLogger, setup_logging
from scenecut.core.progress import ProgressAggregator

__all__ = ["ConfigLoader", "FlightLogger", "ProgressAggregator", "Settings", "resolve_tool_paths", "setup_logging"]
