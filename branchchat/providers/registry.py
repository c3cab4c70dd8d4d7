"""Provider registry: the configured LLM providers, looked up by name.

One registry instance is built at app startup and handed to whatever needs
it; nothing reaches for providers through module state.
"""

from branchchat.providers.base import LLMProvider


class ProviderRegistry:
    def __init__(self, providers: list[LLMProvider] | None = None) -> None:
        self._providers: dict[str, LLMProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: LLMProvider) -> None:
        """Register a provider instance under its name, replacing any previous one."""
        self._providers[provider.name] = provider

    def get(self, name: str) -> LLMProvider:
        """Raises ProviderNotFoundError if nothing is registered under name."""
        try:
            return self._providers[name]
        except KeyError:
            available = ", ".join(self._providers) or "(none)"
            raise ProviderNotFoundError(
                f"Provider '{name}' not registered. Available: {available}"
            ) from None

    def names(self) -> list[str]:
        return list(self._providers)

    def all(self) -> list[LLMProvider]:
        return list(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)


class ProviderNotFoundError(Exception):
    pass
