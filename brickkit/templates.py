"""Template engines for `mustache`, `handlebars` and `nunjucks` expressions."""

from __future__ import annotations

import functools
import re
from collections.abc import Mapping
from typing import Any

import chevron
from jinja2 import ChainableUndefined, TemplateSyntaxError
from jinja2.sandbox import SandboxedEnvironment

from brickkit.errors import ConfigurationError
from brickkit.expressions import TEMPLATE_ENGINES, has_template_markers

# Context keys such as `@input` are not valid Jinja identifiers, so references
# inside tags are rewritten to `_at_input` and the context is aliased to match.
_ALIAS_PREFIX = "_at_"
_JINJA_TAG_RE = re.compile(r"({{.*?}}|{%.*?%})", re.DOTALL)
_AT_REFERENCE_RE = re.compile(r"(?<![\w@'\"])@([A-Za-z_]\w*)")


class _MappingFirstEnvironment(SandboxedEnvironment):
    """Sandbox that looks up `obj.name` as a mapping key before an attribute.

    Without this, keys such as `items` or `values` resolve to dict methods.
    """

    def getattr(self, obj: Any, attribute: str) -> Any:
        if isinstance(obj, Mapping) and attribute in obj:
            return obj[attribute]
        return super().getattr(obj, attribute)


@functools.lru_cache(maxsize=2)
def _jinja_environment(autoescape: bool) -> SandboxedEnvironment:
    return _MappingFirstEnvironment(
        autoescape=autoescape,
        undefined=ChainableUndefined,
        keep_trailing_newline=True,
    )


def _rewrite_at_references(template: str) -> str:
    def _rewrite_tag(match: re.Match[str]) -> str:
        return _AT_REFERENCE_RE.sub(lambda m: _ALIAS_PREFIX + m.group(1), match.group(0))

    return _JINJA_TAG_RE.sub(_rewrite_tag, template)


def _jinja_context(context: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in context.items():
        if not isinstance(key, str):
            continue
        if key.startswith("@"):
            out[_ALIAS_PREFIX + key[1:]] = value
        else:
            out[key] = value
    return out


def render_nunjucks(template: str, context: Mapping[str, Any], *, autoescape: bool = True) -> str:
    env = _jinja_environment(bool(autoescape))
    try:
        compiled = env.from_string(_rewrite_at_references(template))
    except TemplateSyntaxError as exc:
        raise ConfigurationError(f"Invalid nunjucks template (line {exc.lineno}): {exc.message}") from exc
    return compiled.render(_jinja_context(context))


def render_mustache(template: str, context: Mapping[str, Any]) -> str:
    try:
        return chevron.render(template, dict(context))
    except chevron.ChevronError as exc:
        raise ConfigurationError(f"Invalid mustache template: {exc}") from exc


def render_template(
    engine: str,
    template: str,
    context: Mapping[str, Any],
    *,
    autoescape: bool = True,
) -> str:
    """Render `template` with the named engine.

    Text without interpolation markers (including the empty string) is returned
    as-is so that blank fields stay distinguishable from rendered output.
    Handlebars templates are rendered with the mustache engine, which covers the
    variable and section syntax shared by both.
    """

    if engine not in TEMPLATE_ENGINES:
        raise ConfigurationError(f"Unknown template engine: {engine!r}")
    if not isinstance(template, str):
        raise ConfigurationError(
            f"{engine} template must be a string (type={type(template).__name__})"
        )
    if not has_template_markers(template):
        return template
    if engine == "nunjucks":
        return render_nunjucks(template, context, autoescape=autoescape)
    return render_mustache(template, context)
