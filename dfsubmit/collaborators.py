"""
Interfaces for the external components dfsubmit drives.

dfsubmit never builds pipeline graphs, speaks the job service's wire
protocol, or executes pipeline logic. Those jobs belong to collaborators
supplied by the caller (or loaded from config by factory path):

- ImageResolver: default worker container image lookup
- GraphCompiler: pipeline handle -> portable model
- JobTranslator: (model, config, plan) -> human-inspectable job description
- JobExecutor: submits (model, config, plan) to the remote job service

Keeping these as Protocols means the orchestration layer has no SDK
imports for graph compilation or the job service, and tests can pass
plain fakes.
"""

import importlib
import logging
import os
from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

from dfsubmit.context import RunContext

if TYPE_CHECKING:
    from dfsubmit.naming import StagingPlan
    from dfsubmit.options import LaunchConfiguration

logger = logging.getLogger(__name__)

DEFAULT_CONTAINER_IMAGE = "apache/beam_python3.11_sdk:latest"
CONTAINER_IMAGE_ENV = "DFSUBMIT_CONTAINER_IMAGE"


@runtime_checkable
class ImageResolver(Protocol):
    """Looks up the worker container image when none was configured."""

    def resolve(self, ctx: RunContext) -> str:
        ...


@runtime_checkable
class GraphCompiler(Protocol):
    """Compiles a pipeline handle into a portable execution model."""

    def compile(self, pipeline: Any, container_image: str) -> Any:
        """
        Args:
            pipeline: Caller's pipeline handle (opaque to dfsubmit)
            container_image: Resolved worker image to reference in the model

        Returns:
            Portable model. Dicts are rendered as JSON in dry-run output;
            anything else via to_text() if present, else str().
        """
        ...


@runtime_checkable
class JobTranslator(Protocol):
    """Builds the job description the service would receive, offline."""

    def translate(
        self,
        model: Any,
        config: "LaunchConfiguration",
        plan: "StagingPlan",
    ) -> Any:
        ...


@runtime_checkable
class JobExecutor(Protocol):
    """
    Submits a job to the remote service.

    Owns its own artifact uploads and retry policy. Errors raised here
    reach dfsubmit callers unchanged.
    """

    def submit(
        self,
        ctx: RunContext,
        model: Any,
        config: "LaunchConfiguration",
        plan: "StagingPlan",
        endpoint: str,
        async_submit: bool,
    ) -> Any:
        ...


class EnvImageResolver:
    """Reads the image from DFSUBMIT_CONTAINER_IMAGE, else a built-in default."""

    def __init__(self, default: str = DEFAULT_CONTAINER_IMAGE):
        self.default = default

    def resolve(self, ctx: RunContext) -> str:
        return os.environ.get(CONTAINER_IMAGE_ENV) or self.default


# =============================================================================
# SECURE FACTORY LOADER
# =============================================================================

# Modules collaborators may be loaded from, in addition to those listed in
# config (factory_modules). Exact matches or submodules only.
ALLOWED_FACTORY_MODULES = [
    "dfsubmit.collaborators",
]


def _is_allowed_module(module_path: str, allowed_modules: list[str]) -> bool:
    """Check if module is in allowlist (exact match or submodule)."""
    for allowed in allowed_modules:
        if module_path == allowed or module_path.startswith(allowed + "."):
            return True
    return False


def load_service_factory(
    factory_path: str,
    extra_modules: list[str] | None = None,
) -> Callable[..., Any]:
    """Load a collaborator factory by dotted path string.

    Only allows factories from allowlisted modules (exact match or submodules).

    Args:
        factory_path: e.g. "mycompany.dataflow:build_executor"
        extra_modules: Additional allowlisted modules (from config)

    Returns:
        The callable factory function

    Raises:
        ValueError: If path not in allowlist or malformed
        ImportError: If module not found
        AttributeError: If function not found in module
        TypeError: If attribute is not callable
    """
    if ":" not in factory_path:
        raise ValueError(f"Factory path must be 'module:function', got: {factory_path}")

    module_path, func_name = factory_path.rsplit(":", 1)

    allowed_modules = ALLOWED_FACTORY_MODULES + list(extra_modules or [])
    if not _is_allowed_module(module_path, allowed_modules):
        raise ValueError(
            f"Factory module '{module_path}' not in allowlist. "
            f"Allowed: {allowed_modules}"
        )

    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        raise ImportError(f"Cannot import factory module '{module_path}': {e}") from e

    try:
        factory = getattr(module, func_name)
    except AttributeError as e:
        raise AttributeError(
            f"Factory function '{func_name}' not found in '{module_path}': {e}"
        ) from e

    if not callable(factory):
        raise TypeError(f"{factory_path} is not callable")

    return factory


def build_collaborator(factory_path: str, extra_modules: list[str] | None = None) -> Any:
    """Load a factory and call it with no arguments."""
    factory = load_service_factory(factory_path, extra_modules)
    collaborator = factory()
    logger.debug("Loaded collaborator %s from %s", type(collaborator).__name__, factory_path)
    return collaborator
