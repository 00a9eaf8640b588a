"""Dictionary helpers for layering configuration sources."""

from typing import Any, Dict


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge an override mapping onto a dumped configuration.

    Sections present in both are merged key by key, so a YAML file that only
    sets ``simulation.trial_count`` keeps every other simulation default.
    Per-line sections under ``lines`` merge the same way.

    Args:
        base: Dumped configuration providing the defaults.
        override: Values that take precedence.

    Returns:
        New merged dictionary. Neither input is mutated.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def set_dotted(data: Dict[str, Any], path: str, value: Any) -> None:
    """Set ``data["a"]["b"] = value`` for the path ``"a.b"`` in place.

    Missing intermediate sections are created.
    """
    *parents, leaf = path.split(".")
    current = data
    for part in parents:
        current = current.setdefault(part, {})
    current[leaf] = value
