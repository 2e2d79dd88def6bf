"""Loading of Python build scripts.

A build script is an ordinary Python file. It declares its tasks either in a
module-level ``register_tasks(build)`` function, or at import time through
the ``build`` orchestrator injected into its namespace before execution.
"""

import importlib.util
import sys
from pathlib import Path

from taskweave.errors import TaskweaveError
from taskweave.log_config import get_logger
from taskweave.orchestrator.orchestrator import BuildOrchestrator

logger = get_logger(__name__)

REGISTER_HOOK = "register_tasks"


class BuildScriptError(TaskweaveError):
    """A build script could not be imported or declared no tasks."""


def load_build_script(path: str | Path, orchestrator: BuildOrchestrator) -> BuildOrchestrator:
    """Import a build script and let it register its tasks.

    Args:
        path: Path to the build script
        orchestrator: Orchestrator the tasks are registered on

    Returns:
        The same orchestrator, for chaining

    Raises:
        FileNotFoundError: If the script does not exist
        BuildScriptError: If the script fails to import or registers nothing
    """
    script = Path(path).resolve()
    if not script.is_file():
        msg = f"Build script not found: {script}"
        raise FileNotFoundError(msg)

    module_name = f"taskweave_build_{abs(hash(str(script)))}"
    spec = importlib.util.spec_from_file_location(module_name, script)
    if spec is None or spec.loader is None:
        msg = f"Cannot import build script: {script}"
        raise BuildScriptError(msg)

    module = importlib.util.module_from_spec(spec)
    module.build = orchestrator
    # dataclasses and pickle look the script's classes up by module name
    sys.modules[module_name] = module
    # Scripts may import helper modules that sit beside them
    sys.path.insert(0, str(script.parent))
    try:
        spec.loader.exec_module(module)
        hook = getattr(module, REGISTER_HOOK, None)
        if callable(hook):
            hook(orchestrator)
    except TaskweaveError:
        sys.modules.pop(module_name, None)
        raise
    except Exception as e:
        sys.modules.pop(module_name, None)
        logger.exception("build_script_import_failed", path=str(script))
        msg = f"Error while loading build script {script}: {e}"
        raise BuildScriptError(msg) from e
    finally:
        sys.path.remove(str(script.parent))

    if len(orchestrator.registry) == 0:
        msg = f"Build script {script} did not register any tasks"
        raise BuildScriptError(msg)

    logger.info("build_script_loaded", path=str(script), tasks=len(orchestrator.registry))
    return orchestrator
