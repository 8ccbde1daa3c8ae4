"""AST based import graph of the project packages.

Used by tests to enforce layering:
  - no import cycles between modules
  - forbidden edges (e.g. sessions must not reach into llm/orchestration,
    chatcore never imports the HTTP layer)

Relative imports are resolved against the importing module's package;
``__init__.py`` files map to the package name itself.
"""
from __future__ import annotations

import ast
from pathlib import Path
from typing import Dict, List, Set, Tuple


def _module_name(py: Path, root_path: Path, package: str) -> str:
    parts = list(py.relative_to(root_path).with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join([package, *parts])


def _resolve_relative(
    module: str, is_pkg: bool, level: int, target: str | None
) -> str:
    base = module.split(".")
    if not is_pkg:
        base = base[:-1]
    if level > 1:
        base = base[: -(level - 1)]
    return ".".join(base + ([target] if target else []))


def build_import_graph(
    root: str | Path = "chatcore",
    package: str | None = None,
    prefixes: Tuple[str, ...] = ("chatcore", "chatdesk"),
) -> Dict[str, Set[str]]:
    root_path = Path(root)
    package = package or root_path.name
    edges: Dict[str, Set[str]] = {}
    for py in root_path.rglob("*.py"):
        if "__pycache__" in py.parts:
            continue
        mod = _module_name(py, root_path, package)
        is_pkg = py.name == "__init__.py"
        try:
            tree = ast.parse(py.read_text(encoding="utf-8"))
        except SyntaxError:
            continue
        targets = edges.setdefault(mod, set())
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                names = [n.name for n in node.names]
            elif isinstance(node, ast.ImportFrom):
                if node.level:
                    names = [
                        _resolve_relative(mod, is_pkg, node.level, node.module)
                    ]
                else:
                    names = [node.module or ""]
            else:
                continue
            for name in names:
                if name.split(".")[0] in prefixes and name != mod:
                    targets.add(name)
    for n in list(edges):
        for dst in edges[n]:
            edges.setdefault(dst, set())
    return edges


def detect_cycles(graph: Dict[str, Set[str]]) -> List[List[str]]:
    visited: Set[str] = set()
    stack: Set[str] = set()
    cycles: List[List[str]] = []

    def dfs(node: str, path: List[str]) -> None:
        if node in stack:
            if node in path:
                idx = path.index(node)
                cycles.append(path[idx:] + [node])
            return
        if node in visited:
            return
        visited.add(node)
        stack.add(node)
        for nxt in sorted(graph.get(node, ())):
            dfs(nxt, path + [nxt])
        stack.remove(node)

    for n in sorted(graph):
        if n not in visited:
            dfs(n, [n])
    return cycles


def forbidden_edges(
    graph: Dict[str, Set[str]], rules: List[Tuple[str, str]]
) -> List[Tuple[str, str]]:
    found: List[Tuple[str, str]] = []
    for src, targets in graph.items():
        for dst in targets:
            for a, b in rules:
                if src.startswith(a) and dst.startswith(b):
                    found.append((src, dst))
    return found


__all__ = ["build_import_graph", "detect_cycles", "forbidden_edges"]
