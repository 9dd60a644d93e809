"""Path template rendering.

Dataset metadata declares file locations as templates such as
"data/chunk-{episode_chunk:03d}/episode_{episode_index:06d}.parquet".
Only two placeholder forms exist: "{name}" and "{name:Nd}" / "{name:0Nd}".
Integer values without an explicit width get a default width per variable.
"""

from __future__ import annotations

import numbers
import re
from collections.abc import Mapping
from typing import Any

from loupe.core.exceptions import MalformedTemplateError

_PLACEHOLDER = re.compile(r"\{([^{}:]*)(?::([^{}]*))?\}")
_WIDTH_SPEC = re.compile(r"0?(\d+)d")

DEFAULT_WIDTHS: dict[str, int] = {
    "episode_chunk": 3,
    "chunk_index": 3,
    "file_index": 3,
    "data_chunk_index": 3,
    "data_file_index": 3,
    "video_chunk_index": 3,
    "video_file_index": 3,
    "episode_index": 6,
}

# Default layouts, used when info.json does not declare a template
V2_DATA_PATH = "data/chunk-{episode_chunk:03d}/episode_{episode_index:06d}.parquet"
V2_VIDEO_PATH = "videos/chunk-{episode_chunk:03d}/{video_key}/episode_{episode_index:06d}.mp4"
V3_DATA_PATH = "data/chunk-{chunk_index:03d}/file-{file_index:03d}.parquet"
V3_VIDEO_PATH = "videos/{video_key}/chunk-{chunk_index:03d}/file-{file_index:03d}.mp4"
V3_EPISODES_PATH = "meta/episodes/chunk-{chunk_index:03d}/file-{file_index:03d}.parquet"


def _is_int(value: Any) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


class PathFormatter:
    """Renders path templates with zero-padded integer variables.

    Usage:
        formatter = PathFormatter()
        formatter.format(V2_DATA_PATH, {"episode_chunk": 0, "episode_index": 42})
        # -> "data/chunk-000/episode_000042.parquet"
    """

    def __init__(self, default_widths: Mapping[str, int] | None = None):
        self.default_widths = dict(DEFAULT_WIDTHS if default_widths is None else default_widths)

    def format(self, template: str, variables: Mapping[str, Any]) -> str:
        """Render a template.

        Args:
            template: Path template.
            variables: Values for the placeholders. Extra entries are ignored.

        Returns:
            The rendered path.

        Raises:
            MalformedTemplateError: On unknown placeholders, malformed format
                specs, a width spec applied to a non-integer value, or
                unbalanced braces.
        """
        literal = _PLACEHOLDER.sub("", template)
        if "{" in literal or "}" in literal:
            raise MalformedTemplateError(template, "unbalanced brace")

        def render(match: re.Match[str]) -> str:
            name, spec = match.group(1).strip(), match.group(2)
            if not name:
                raise MalformedTemplateError(template, "empty placeholder")
            if name not in variables:
                raise MalformedTemplateError(template, f"unknown placeholder '{name}'")
            value = variables[name]

            if spec is not None:
                width_match = _WIDTH_SPEC.fullmatch(spec.strip())
                if width_match is None:
                    raise MalformedTemplateError(template, f"unsupported format spec '{spec}'")
                if not _is_int(value):
                    raise MalformedTemplateError(
                        template, f"width spec on non-integer value for '{name}'"
                    )
                return f"{int(value):0{int(width_match.group(1))}d}"

            if _is_int(value) and name in self.default_widths:
                return f"{int(value):0{self.default_widths[name]}d}"
            return str(value)

        return _PLACEHOLDER.sub(render, template)


_default_formatter = PathFormatter()


def format_path(template: str, **variables: Any) -> str:
    """Render a template with the default widths."""
    return _default_formatter.format(template, variables)
