# trainer/engine/utils_config.py
from __future__ import annotations
from dataclasses import fields, is_dataclass
from typing import Any, Mapping


def coalesce_not_none(*vals: Any) -> Any:
    """First argument that is not None; 0 and 0.0 count as set."""
    return next((v for v in vals if v is not None), None)


def _check_field(node: Any, name: str, path: str) -> None:
    if is_dataclass(node) and name not in {f.name for f in fields(node)}:
        raise KeyError(f"Unknown config key '{path}' ({type(node).__name__} has no field '{name}')")


def _child(node: Any, name: str, path: str) -> Any:
    if isinstance(node, dict):
        if node.get(name) is None:
            node[name] = {}
        return node[name]
    _check_field(node, name, path)
    value = getattr(node, name)
    if value is None:
        value = {}
        setattr(node, name, value)
    return value


def apply_dotted_overrides(target: Any, overrides: Mapping[str, Any]) -> None:
    """
    Apply ``{"section.field": value}`` overrides to a config tree in place.

    Dataclass nodes only accept their declared fields (``KeyError`` otherwise);
    dict nodes and ``None`` placeholders grow intermediate dicts as needed.
    """
    for path, value in (overrides or {}).items():
        *parents, leaf = str(path).split(".")
        node = target
        for name in parents:
            node = _child(node, name, path)

        if isinstance(node, dict):
            node[leaf] = value
        else:
            _check_field(node, leaf, path)
            setattr(node, leaf, value)
