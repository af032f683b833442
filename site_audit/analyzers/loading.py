"""Resolves analyzers registered under the ``site_audit.analyzers`` group."""

from collections.abc import Iterable, Sequence
from importlib.metadata import EntryPoint, entry_points

from site_audit.analyzers.base import Analyzer

ENTRY_POINT_GROUP = "site_audit.analyzers"


class AnalyzerNotFoundError(LookupError):
    """Raised when a key names no registered analyzer."""

    def __init__(self, key: str, available: Sequence[str]) -> None:
        super().__init__(
            f"Analyzer '{key}' not found. Available analyzers: {list(available)}"
        )
        self.key = key
        self.available = tuple(available)


def registered_analyzers() -> dict[str, EntryPoint]:
    """Entry points of the analyzer group, by key."""
    return {entry.name: entry for entry in entry_points(group=ENTRY_POINT_GROUP)}


def load_analyzer(
    key: str, registry: dict[str, EntryPoint] | None = None
) -> Analyzer:
    """Load an analyzer by key.

    Args:
        key: The analyzer key as registered in pyproject.toml
             (e.g., "performance", "security-headers")
        registry: Entry points to resolve against; read from the installed
                  distributions when omitted

    Raises:
        AnalyzerNotFoundError: If no analyzer with the given key is registered

    """
    if registry is None:
        registry = registered_analyzers()
    entry = registry.get(key)
    if entry is None:
        raise AnalyzerNotFoundError(key, sorted(registry))
    analyzer: Analyzer = entry.load()
    return analyzer


def load_analyzers(keys: Iterable[str] | None = None) -> Sequence[Analyzer]:
    """Load the selected analyzers, or all of them, always-on analyzers first.

    Every key is resolved before any is used, so a typo fails the run up
    front. Option flags still decide which of the loaded analyzers run.
    """
    registry = registered_analyzers()
    selected = registry if keys is None else dict.fromkeys(keys)
    analyzers = [load_analyzer(key, registry) for key in selected]
    return sorted(analyzers, key=lambda a: (a.option is not None, a.key))
