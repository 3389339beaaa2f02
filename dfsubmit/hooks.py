"""
Hook registry.

Hooks are named, pluggable capture sinks. A registry maps each hook name to
a factory; enabling a hook hands the factory its string arguments (for
example a gs:// destination) and keeps the built capture function.

Lifecycle:
    registry = HookRegistry()
    registry.register("gcs_profile_writer", gcs_recorder_hook)   # process start
    registry.enable("gcs_profile_writer", "gs://bucket/profiles") # once per run
    hook = registry.capture_hook("gcs_profile_writer")            # 0..n uses
    hook(ctx, "trace-1", reader)

Enabled hooks are folded into the exported pipeline options under the
"hooks" key so that workers can re-enable the same hooks.
"""

import json
import logging
import threading
from typing import Any, BinaryIO, Callable, Mapping

from dfsubmit.context import RunContext
from dfsubmit.errors import HookConfigurationError

logger = logging.getLogger(__name__)

HOOKS_OPTION_KEY = "hooks"

# (ctx, spec, reader) -> None; raises on failure
CaptureHook = Callable[[RunContext, str, BinaryIO], None]
HookFactory = Callable[[list[str]], CaptureHook]


class HookRegistry:
    """
    Registry of capture hook factories and their enabled instances.

    Passed explicitly into the SubmissionOrchestrator; nothing in dfsubmit
    mutates a registry it was not handed. Each update is atomic, but the
    registry holds one destination per hook: the last enable() wins for
    every run sharing it.
    """

    def __init__(self) -> None:
        self._factories: dict[str, HookFactory] = {}
        self._enabled: dict[str, list[str]] = {}
        self._hooks: dict[str, CaptureHook] = {}
        self._lock = threading.Lock()

    def register(self, name: str, factory: HookFactory) -> None:
        """
        Register a hook factory under a unique name.

        Raises:
            ValueError: If name is already registered
        """
        if name in self._factories:
            raise ValueError(f"Hook already registered: {name}")
        self._factories[name] = factory

    def has(self, name: str) -> bool:
        return name in self._factories

    def list_hooks(self) -> list[str]:
        """List all registered hook names."""
        return list(self._factories.keys())

    def enable(self, name: str, *args: str) -> None:
        """
        Enable a registered hook with its arguments.

        The factory runs immediately so that bad arguments fail here, before
        any pipeline work. Enabling again replaces the previous arguments.

        Raises:
            KeyError: If no hook is registered under name
            HookConfigurationError: If the factory rejects args
        """
        if name not in self._factories:
            registered = list(self._factories.keys())
            raise KeyError(f"No hook registered: {name}. Registered: {registered}")

        hook = self._factories[name](list(args))
        with self._lock:
            self._enabled[name] = list(args)
            self._hooks[name] = hook
        logger.info("Enabled hook %s with %s", name, list(args))

    def enabled(self) -> dict[str, list[str]]:
        """Return a copy of enabled hook names and their arguments."""
        with self._lock:
            return {name: list(args) for name, args in self._enabled.items()}

    def capture_hook(self, name: str) -> CaptureHook:
        """
        Get the built capture function for an enabled hook.

        Raises:
            KeyError: If the hook is not enabled
        """
        with self._lock:
            if name not in self._hooks:
                raise KeyError(f"Hook not enabled: {name}")
            return self._hooks[name]

    def serialize_to_options(self, options: Mapping[str, Any]) -> dict[str, Any]:
        """
        Fold enabled hooks into a copy of the pipeline options.

        Args:
            options: Exported pipeline options (not modified)

        Returns:
            New options dict; "hooks" holds a JSON object of name -> args,
            absent when no hook is enabled
        """
        result = dict(options)
        with self._lock:
            if self._enabled:
                result[HOOKS_OPTION_KEY] = json.dumps(self._enabled, sort_keys=True)
        return result

    def enable_from_options(self, options: Mapping[str, Any]) -> list[str]:
        """
        Re-enable hooks recorded by serialize_to_options().

        Used by worker processes that receive the exported pipeline options
        and must capture to the same destinations as the submitting process.

        Returns:
            Names of hooks enabled

        Raises:
            HookConfigurationError: If the "hooks" value is not valid JSON
            KeyError: If a recorded hook is not registered here
        """
        raw = options.get(HOOKS_OPTION_KEY)
        if not raw:
            return []
        try:
            recorded = json.loads(raw)
        except json.JSONDecodeError as e:
            raise HookConfigurationError(f"Invalid hooks option: {e}") from e

        for name, args in recorded.items():
            self.enable(name, *args)
        return list(recorded.keys())
