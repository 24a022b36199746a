"""Template interpolation and step condition evaluation."""

from __future__ import annotations

import re

from agentpipe._log import get_logger
from agentpipe.pipeline.context import ExecutionContext

logger = get_logger("pipeline.expressions")

_PLACEHOLDER_RE = re.compile(r"\$\{([\w.-]+)\}")
_STEP_OUTPUT_RE = re.compile(r"^steps\.([\w-]+)\.output$")
_STEP_SUCCESS_RE = re.compile(r"^step\.([\w-]+)\.success$")
_ENV_EQUALS_RE = re.compile(r"""^env\.(\w+)\s*==\s*(['"])(.*)\2$""")


def _lookup(name: str, context: ExecutionContext) -> str | None:
    if name == "previous.output":
        last = context.last_result
        return last.output if last is not None else None

    step_match = _STEP_OUTPUT_RE.match(name)
    if step_match:
        result = context.step_results.get(step_match.group(1))
        return result.output if result is not None else None

    if name in context.variables:
        return context.variables[name]
    return context.env.get(name)


def interpolate(template: str, context: ExecutionContext) -> tuple[str, list[str]]:
    """Replace ``${NAME}`` placeholders in *template*.

    ``NAME`` is looked up in run variables, then the environment.
    ``${previous.output}`` and ``${steps.<id>.output}`` refer to captured
    step outputs. Unresolved placeholders become the empty string.

    Returns the rendered text and the names that could not be resolved.
    """
    missing: list[str] = []

    def replacer(match: re.Match[str]) -> str:
        name = match.group(1)
        value = _lookup(name, context)
        if value is None:
            missing.append(name)
            return ""
        return value

    return _PLACEHOLDER_RE.sub(replacer, template), missing


def condition_met(condition: str, context: ExecutionContext) -> bool:
    """Evaluate a step condition.

    Supported forms: ``always``, ``never``, ``previous.success``,
    ``step.<id>.success`` and ``env.<NAME> == '<value>'``. Anything else is
    treated as true.
    """
    expr = condition.strip()
    if expr == "always":
        return True
    if expr == "never":
        return False

    if expr == "previous.success":
        last = context.last_result
        return last.success if last is not None else True

    step_match = _STEP_SUCCESS_RE.match(expr)
    if step_match:
        result = context.step_results.get(step_match.group(1))
        return result.success if result is not None else False

    env_match = _ENV_EQUALS_RE.match(expr)
    if env_match:
        return context.env.get(env_match.group(1)) == env_match.group(3)

    logger.warning("Unrecognized condition '%s', treating as true", condition)
    return True
