"""Tests for the provider registry and model construction."""

import threading

import pytest

from coord.config import ProfileSpec
from coord.errors import ProviderNotFoundError
from coord.providers import AnthropicModel, OpenAIModel
from coord.registry import ProviderRegistry, build_model, default_registry
from coord.softcall import YAMLSoftCallModel


class _StubModel:
    def __init__(self, profile: ProfileSpec) -> None:
        self.profile = profile

    def name(self) -> str:
        return self.profile.model

    async def close(self) -> None:
        pass

    def generate_stream(self, chat, input, *, cancel=None):
        raise NotImplementedError


class TestProviderRegistry:
    def test_register_and_create(self):
        reg = ProviderRegistry()
        reg.register("stub", _StubModel)
        model = reg.create(ProfileSpec(provider="stub", model="m1"))
        assert isinstance(model, _StubModel)
        assert model.name() == "m1"

    def test_unknown_provider(self):
        reg = ProviderRegistry()
        with pytest.raises(ProviderNotFoundError):
            reg.create(ProfileSpec(provider="nope"))

    def test_duplicate_rejected(self):
        reg = ProviderRegistry()
        reg.register("stub", _StubModel)
        with pytest.raises(ValueError):
            reg.register("stub", _StubModel)
        reg.register("stub", _StubModel, replace=True)

    def test_unregister(self):
        reg = ProviderRegistry()
        reg.register("stub", _StubModel)
        reg.unregister("stub")
        assert reg.names() == []

    def test_concurrent_registration(self):
        reg = ProviderRegistry()

        def _register(i: int) -> None:
            reg.register(f"p{i}", _StubModel)

        threads = [threading.Thread(target=_register, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(reg.names()) == 20


class TestDefaultRegistry:
    def test_builtin_providers(self):
        assert default_registry().names() == ["anthropic", "openai"]

    def test_singleton(self):
        assert default_registry() is default_registry()

    async def test_creates_vendor_models(self):
        openai = default_registry().create(ProfileSpec(provider="openai", model="gpt-4o-mini"))
        anthropic = default_registry().create(
            ProfileSpec(provider="anthropic", model="claude-sonnet-4-5", api_key="k"),
        )
        assert isinstance(openai, OpenAIModel)
        assert isinstance(anthropic, AnthropicModel)
        assert anthropic.name() == "claude-sonnet-4-5"
        await openai.close()
        await anthropic.close()


class TestBuildModel:
    def test_plain(self):
        reg = ProviderRegistry()
        reg.register("stub", _StubModel)
        model = build_model(ProfileSpec(provider="stub", model="m"), reg)
        assert isinstance(model, _StubModel)

    def test_softcall_wrapper(self):
        reg = ProviderRegistry()
        reg.register("stub", _StubModel)
        profile = ProfileSpec(provider="stub", model="m", softcall=True, preserve_reasoning=True)
        model = build_model(profile, reg)
        assert isinstance(model, YAMLSoftCallModel)
        assert model.config.preserve_reasoning is True
        assert model.name() == "m"
