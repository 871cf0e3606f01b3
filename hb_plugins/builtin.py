"""Built-in workload behaviors shipped with hostbench."""

import importlib
import logging
from pathlib import Path
from typing import Any, List

logger = logging.getLogger(__name__)
_PLUGIN_PACKAGE = f"{__package__}.plugins"


def builtin_behaviors() -> List[Any]:
    """
    Return built-in workload behaviors via dynamic discovery.

    Scans `plugins/` for modules exporting `PLUGIN` or `PLUGINS`.
    """
    behaviors: List[Any] = []

    plugins_path = Path(__file__).resolve().parent / "plugins"
    if not plugins_path.exists():
        return behaviors

    for item in sorted(plugins_path.iterdir()):
        if not (item.is_dir() and (item / "plugin.py").exists()):
            continue
        module_name = f"{_PLUGIN_PACKAGE}.{item.name}.plugin"
        try:
            mod = importlib.import_module(module_name)
        except ImportError as exc:
            logger.debug("Skipping workload %s: %s", module_name, exc)
            continue
        if hasattr(mod, "PLUGINS"):
            discovered = getattr(mod, "PLUGINS")
            behaviors.extend(discovered if isinstance(discovered, list) else [discovered])
        elif hasattr(mod, "PLUGIN"):
            behaviors.append(mod.PLUGIN)

    return behaviors
