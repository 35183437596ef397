"""Application modules: units that contribute routers, views and static files"""

import logging
import os
from dataclasses import dataclass
from importlib import import_module
from pathlib import Path
from typing import Dict, List

from fastapi import APIRouter

from appserver.core.config import ModuleConfig
from appserver.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class RouterEntry:
    """A router and its mount priority (higher mounts first)"""

    router: APIRouter
    priority: int = 0


class AppModule:
    """Base class for application modules.

    Subclasses override ``routers()`` to expose HTTP endpoints. Views and
    static directories are declared in the module configuration.
    """

    def __init__(self, name: str, config: ModuleConfig):
        self.name = name
        self.config = config

    def routers(self) -> List[RouterEntry]:
        return []


def module_path(base_path: str, module_name: str, path: str) -> Path:
    """Absolute paths are kept; relative ones live under <base_path>/modules/<module>/"""
    if os.path.isabs(path):
        return Path(path)
    return Path(base_path) / "modules" / module_name / path


def load_modules(modules_config: Dict[str, ModuleConfig]) -> Dict[str, AppModule]:
    """
    Import and instantiate configured modules.

    Entrypoints use the ``package.module:ClassName`` form. Modules without an
    entrypoint get a plain ``AppModule`` so their views and static files are
    still served.

    Raises:
        ConfigurationError: If an entrypoint cannot be imported
    """
    modules: Dict[str, AppModule] = {}
    for name, config in modules_config.items():
        if not config.entrypoint:
            modules[name] = AppModule(name, config)
            continue

        module_path, _, class_name = config.entrypoint.partition(":")
        try:
            module_cls = getattr(import_module(module_path), class_name or "Module")
        except (ImportError, AttributeError) as e:
            raise ConfigurationError(f"Could not load module {name} from {config.entrypoint}: {e}") from e

        modules[name] = module_cls(name, config)
        logger.info(f"Loaded module: {name}")
    return modules
