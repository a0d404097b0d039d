"""
Sink loader for automatic discovery and registration of sink classes.
"""

import importlib
import inspect
import logging
import pathlib
from types import ModuleType
from typing import Dict, Type

from .interfaces import Sink

logger = logging.getLogger(__name__)

# Sink directory relative to this file
SINK_DIR = pathlib.Path(__file__).parent.parent / "sinks"

# Global registry of discovered sink classes
_REGISTRY: Dict[str, Type[Sink]] = {}


def _load_module(path: pathlib.Path) -> ModuleType:
    """Import a sink module, e.g. sinks.stdout_sink."""
    full_name = f"sinks.{path.stem}"
    mod = importlib.import_module(full_name)
    logger.debug(f"Loaded module: {full_name}")
    return mod


def refresh_registry() -> None:
    """Scan all Python files in sinks/ and register Sink subclasses."""
    _REGISTRY.clear()

    if not SINK_DIR.exists():
        logger.warning(f"Sink directory does not exist: {SINK_DIR}")
        return

    module_count = 0

    for py_file in sorted(SINK_DIR.glob("*.py")):
        # Skip __init__.py and files starting with _
        if py_file.name.startswith("_"):
            continue

        try:
            mod = _load_module(py_file)
        except Exception as e:
            logger.error(f"Failed to load module {py_file}: {e}")
            continue
        module_count += 1

        # Find all Sink subclasses defined in this module
        for name, obj in inspect.getmembers(mod, inspect.isclass):
            if (issubclass(obj, Sink) and
                obj is not Sink and
                not inspect.isabstract(obj) and
                obj.__module__ == mod.__name__):

                # Register with key: module_name.ClassName
                key = f"{py_file.stem}.{obj.__name__}"
                _REGISTRY[key] = obj
                logger.debug(f"Registered sink: {key}")

    logger.info(f"Sink discovery complete: {module_count} modules, {len(_REGISTRY)} sinks")


def get(class_path: str) -> Type[Sink]:
    """Get a sink class by its path.

    Args:
        class_path: Format 'module_name.ClassName' (e.g., 'stdout_sink.StdoutSink')

    Returns:
        The sink class

    Raises:
        KeyError: If the class is not found
    """
    if not _REGISTRY:
        refresh_registry()

    if class_path not in _REGISTRY:
        available = sorted(_REGISTRY.keys())
        raise KeyError(f"Sink '{class_path}' not found. Available: {available}")

    return _REGISTRY[class_path]


def list_available() -> Dict[str, Type[Sink]]:
    """Get a copy of all registered sinks."""
    if not _REGISTRY:
        refresh_registry()
    return _REGISTRY.copy()
