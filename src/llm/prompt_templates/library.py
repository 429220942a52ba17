"""Instruction library loaded from ``config/instructions.yaml``.

The text is injected as the system role of every upstream request and never
returned to tenants; only the request-type keys are public.
"""

from __future__ import annotations

from pathlib import Path

import yaml

from src.core.constants import ADDENDUM_SEPARATOR
from src.core.logging import get_logger

log = get_logger(__name__)


class InstructionLibrary:
    """Lookup of instruction text by request type with a default fallback."""

    def __init__(self, templates: dict[str, str], default_type: str) -> None:
        if not templates:
            msg = "instruction library needs at least one template"
            raise ValueError(msg)
        if default_type not in templates:
            msg = f"default request type {default_type!r} has no template"
            raise ValueError(msg)
        self._templates = {k: v.strip() for k, v in templates.items()}
        self._default_type = default_type

    @classmethod
    def from_yaml(cls, path: Path, default_type: str | None = None) -> InstructionLibrary:
        """Load templates from a YAML file (``default`` + ``templates`` keys)."""
        with open(path, encoding="utf-8") as fh:
            config: dict[str, object] = yaml.safe_load(fh) or {}

        raw = config.get("templates") or {}
        if not isinstance(raw, dict):
            msg = f"{path}: 'templates' must be a mapping"
            raise ValueError(msg)

        templates = {str(k): str(v) for k, v in raw.items()}
        default = default_type or str(config.get("default", ""))
        if default not in templates:
            # Settings may name a default the file does not carry; fall back to the file's own.
            default = str(config.get("default", "")) or next(iter(templates), "")

        log.info("instructions_loaded", path=str(path), count=len(templates), default=default)
        return cls(templates, default)

    @property
    def default_type(self) -> str:
        return self._default_type

    def request_types(self) -> list[str]:
        return list(self._templates)

    def get(self, request_type: str | None) -> str:
        """Instruction text for ``request_type``; unknown types use the default."""
        if request_type and request_type in self._templates:
            return self._templates[request_type]
        log.debug("instruction_fallback", requested=request_type, default=self._default_type)
        return self._templates[self._default_type]

    def compose(self, request_type: str | None, addendum: str | None = None) -> str:
        """System prompt for a request, with the requester's addendum appended."""
        text = self.get(request_type)
        if addendum and addendum.strip():
            text = f"{text}{ADDENDUM_SEPARATOR}{addendum.strip()}"
        return text
