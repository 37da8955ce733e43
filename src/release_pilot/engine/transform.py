"""Binds declarative hooks and overrides from a YAML file onto engine stages.

The file's ``hooks`` mapping looks like::

    hooks:
      build_step:
        pre: run("npm run generate")
      test_step:
        override: |
          run("make check")
          log("custom test step finished")
      package_step:
        override: |
          run("make changelog")
          default()

Expressions are checked against an AST allow-list, compiled once, and
evaluated with no builtins and a namespace of ``ctx``, ``config``,
``run(cmd)``, ``log(msg)`` and ``default()``, which runs the stage's
built-in body.
"""

from __future__ import annotations

import ast
import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from release_pilot.config import load_config_file
from release_pilot.engine.stages import HOOK_PREFIXES, PROTECTED_STAGES, STAGES, hook_point
from release_pilot.errors import ConfigFileUnreadable, EngineTransformUnavailableStep, ReleasePilotError
from release_pilot.packages.base import run_command

if TYPE_CHECKING:
    from release_pilot.engine.pipeline import PipelineEngine

logger = logging.getLogger(__name__)

SCOPES = ("global", "repo")
OVERRIDE = "override"

StageCallable = Callable[["PipelineEngine"], None]

_ALLOWED_NODES: tuple[type[ast.AST], ...] = (
    ast.Module,
    ast.Expr,
    ast.Assign,
    ast.AugAssign,
    ast.If,
    ast.IfExp,
    ast.Pass,
    ast.BoolOp,
    ast.BinOp,
    ast.UnaryOp,
    ast.Compare,
    ast.Call,
    ast.keyword,
    ast.Name,
    ast.Attribute,
    ast.Subscript,
    ast.Slice,
    ast.Constant,
    ast.List,
    ast.Tuple,
    ast.Dict,
    ast.JoinedStr,
    ast.FormattedValue,
    ast.Load,
    ast.Store,
    ast.boolop,
    ast.operator,
    ast.unaryop,
    ast.cmpop,
)


def _check_node(node: ast.AST, label: str) -> None:
    if not isinstance(node, _ALLOWED_NODES):
        raise EngineTransformUnavailableStep(
            f"Hook {label} uses a disallowed construct: {type(node).__name__}"
        )
    if isinstance(node, ast.Name) and node.id.startswith("_"):
        raise EngineTransformUnavailableStep(f"Hook {label} references private name {node.id!r}")
    if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
        raise EngineTransformUnavailableStep(
            f"Hook {label} references private attribute {node.attr!r}"
        )


def compile_hook(source: str, label: str) -> StageCallable:
    """
    Compile a hook expression into a callable taking the engine.

    Raises:
        EngineTransformUnavailableStep: If the expression does not parse or
            uses a construct outside the allow-list
    """
    if not isinstance(source, str) or not source.strip():
        raise EngineTransformUnavailableStep(f"Hook {label} must be a non-empty string")

    try:
        tree = ast.parse(source, filename=f"<hook {label}>", mode="exec")
    except SyntaxError as exc:
        raise EngineTransformUnavailableStep(
            f"Hook {label} has a syntax error at line {exc.lineno}: {exc.msg}"
        )

    for node in ast.walk(tree):
        _check_node(node, label)

    code = compile(tree, filename=f"<hook {label}>", mode="exec")

    def hook(engine: PipelineEngine) -> None:
        namespace = _namespace(engine, label)
        exec(code, {"__builtins__": {}}, namespace)

    hook.__name__ = f"hook_{label.replace('.', '_')}"
    return hook


def _namespace(engine: PipelineEngine, label: str) -> dict[str, Any]:
    def run(cmd: str) -> str:
        cwd = engine.ctx.git_local_path or engine.ctx.git_parent_path or Path.cwd()
        return run_command(cmd, cwd, ReleasePilotError)

    def log(msg: Any) -> None:
        logger.info(f"[{label}] {msg}")

    def default() -> None:
        engine.default_body(label.split(".", 1)[0])()

    return {
        "ctx": engine.ctx,
        "config": engine.config,
        "run": run,
        "log": log,
        "default": default,
    }


def apply(engine: PipelineEngine, config_file: str | Path, scope: str = "global") -> int:
    """
    Load hooks from ``config_file`` and register them on ``engine``.

    Every entry is validated and compiled before anything is registered, so a
    rejected file leaves the engine untouched.

    Args:
        engine: Engine to extend
        config_file: YAML file with a ``hooks`` mapping
        scope: "global" for operator files, "repo" for the repository file

    Returns:
        Number of hooks and overrides registered

    Raises:
        EngineTransformUnavailableStep: If the file touches an unknown stage,
            an unknown hook kind, or (at repo scope) a protected stage
    """
    if scope not in SCOPES:
        raise ValueError(f"Unknown hook scope: {scope!r}")

    path = Path(config_file).expanduser()
    try:
        data = load_config_file(path)
    except ConfigFileUnreadable as exc:
        logger.info("No hook file loaded", extra={"path": str(path), "reason": str(exc)})
        return 0

    hooks = data.get("hooks") or {}
    if not isinstance(hooks, dict):
        raise EngineTransformUnavailableStep(f"'hooks' in {path} must be a mapping")

    planned: list[tuple[str, str, StageCallable]] = []
    for stage, entries in hooks.items():
        if stage not in STAGES:
            raise EngineTransformUnavailableStep(f"Unknown stage {stage!r} in {path}")
        if scope == "repo" and stage in PROTECTED_STAGES:
            raise EngineTransformUnavailableStep(
                f"Stage {stage!r} cannot be customized from the repository configuration"
            )
        if not isinstance(entries, dict):
            raise EngineTransformUnavailableStep(f"Hooks for {stage!r} must be a mapping")

        for kind, expression in entries.items():
            if kind not in HOOK_PREFIXES and kind != OVERRIDE:
                raise EngineTransformUnavailableStep(f"Unknown hook kind {kind!r} for {stage!r}")
            planned.append((stage, kind, compile_hook(expression, f"{stage}.{kind}")))

    for stage, kind, hook in planned:
        if kind == OVERRIDE:
            engine.overrides[stage] = hook
        else:
            engine.hooks.add(hook_point(kind, stage), hook)

    logger.info(
        "Applied hook file",
        extra={"path": str(path), "scope": scope, "count": len(planned)},
    )
    return len(planned)
