"""Named model factories.

A provider name maps to a factory that turns a :class:`ProfileSpec` into
a :class:`~coord.llm.base.Model`.  Registration is thread-safe so that
plugins may register from import-time side effects.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from coord.config import ProfileSpec
from coord.errors import ProviderNotFoundError
from coord.llm.base import Model
from coord.softcall import SoftCallConfig, YAMLSoftCallModel

_logger = logging.getLogger(__name__)

ModelFactory = Callable[[ProfileSpec], Model]


class ProviderRegistry:
    """Thread-safe mapping of provider names to model factories."""

    def __init__(self) -> None:
        self._factories: dict[str, ModelFactory] = {}
        self._lock = threading.Lock()

    def register(self, name: str, factory: ModelFactory, *, replace: bool = False) -> None:
        """Register *factory* under *name*.

        Raises ``ValueError`` if the name is taken, unless *replace* is set.
        """
        with self._lock:
            if name in self._factories and not replace:
                raise ValueError(f"provider {name!r} is already registered")
            self._factories[name] = factory
        _logger.debug("Registered provider %r", name)

    def unregister(self, name: str) -> None:
        with self._lock:
            self._factories.pop(name, None)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._factories)

    def create(self, profile: ProfileSpec) -> Model:
        """Instantiate the model described by *profile*."""
        with self._lock:
            factory = self._factories.get(profile.provider)
        if factory is None:
            raise ProviderNotFoundError(profile.provider)
        return factory(profile)


_default: ProviderRegistry | None = None
_default_lock = threading.Lock()


def default_registry() -> ProviderRegistry:
    """The process-wide registry, with the built-in providers registered."""
    global _default
    with _default_lock:
        if _default is None:
            from coord.providers import AnthropicModel, OpenAIModel

            registry = ProviderRegistry()
            registry.register("openai", OpenAIModel.from_profile)
            registry.register("anthropic", AnthropicModel.from_profile)
            _default = registry
        return _default


def build_model(profile: ProfileSpec, registry: ProviderRegistry | None = None) -> Model:
    """Create the model for *profile*, wrapped in the tool-call emulator
    when ``profile.softcall`` is set.
    """
    model = (registry or default_registry()).create(profile)
    if profile.softcall:
        _logger.info("Using emulated tool calls for %s", model.name())
        model = YAMLSoftCallModel(
            model, SoftCallConfig(preserve_reasoning=profile.preserve_reasoning),
        )
    return model
