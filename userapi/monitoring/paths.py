"""
Request path normalization and monitoring exclusion.

Metric labels and span attributes use the matched route template
(``/users/:id``) rather than the raw path (``/users/42``) so label
cardinality stays bounded.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from starlette.requests import Request

_DUPLICATE_SLASHES = re.compile(r"/{2,}")
# Starlette placeholders: {id} or {id:int}
_PATH_PARAM = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)(?::[^}]*)?\}")

# Label for requests no route matched (404/405 on unknown paths)
UNMATCHED_PATH = "/<unmatched>"


@dataclass(frozen=True)
class RequestDescriptor:
    method: str
    raw_path: str
    normalized_path: str
    matched: bool = True

    @property
    def label_path(self) -> str:
        """Path used as a metric label; unmatched requests share one series."""
        return self.normalized_path if self.matched else UNMATCHED_PATH


def normalize_path(raw_path: Optional[str], route_template: Optional[str] = None) -> str:
    """
    Canonicalize a request path.

    The route template wins when routing resolved one. The result always
    starts with ``/``, has no duplicate slashes and no trailing slash (except
    the root path itself). Normalizing a normalized path is a no-op.
    """
    path = route_template or raw_path or "/"
    path = path.split("?", 1)[0].split("#", 1)[0]
    path = _PATH_PARAM.sub(lambda m: f":{m.group(1)}", path)
    path = _DUPLICATE_SLASHES.sub("/", "/" + path.strip())
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def route_template_for(request: Request) -> Optional[str]:
    """Return the matched route's template, if routing already ran."""
    route = request.scope.get("route")
    if route is None:
        return None
    template = getattr(route, "path_format", None) or getattr(route, "path", None)
    return template if isinstance(template, str) else None


def describe_request(request: Request) -> RequestDescriptor:
    raw_path = request.url.path
    template = route_template_for(request)
    return RequestDescriptor(
        method=request.method.upper(),
        raw_path=raw_path,
        normalized_path=normalize_path(raw_path, template),
        matched=template is not None,
    )


class ExclusionSet:
    """Immutable, ordered set of path prefixes that are never monitored."""

    def __init__(self, prefixes: Iterable[str]):
        ordered: list[str] = []
        for prefix in prefixes:
            normalized = normalize_path(prefix)
            if normalized not in ordered:
                ordered.append(normalized)
        self._prefixes: Tuple[str, ...] = tuple(ordered)

    @property
    def prefixes(self) -> Tuple[str, ...]:
        return self._prefixes

    def is_excluded(self, normalized_path: str) -> bool:
        # "/" as an entry would exclude everything; only match it exactly
        return any(
            normalized_path == prefix
            or (prefix != "/" and normalized_path.startswith(prefix + "/"))
            for prefix in self._prefixes
        )

    def __contains__(self, normalized_path: object) -> bool:
        return isinstance(normalized_path, str) and self.is_excluded(normalized_path)

    def __iter__(self):
        return iter(self._prefixes)

    def __repr__(self) -> str:
        return f"ExclusionSet({list(self._prefixes)!r})"
