# gotmpls/config.py
"""Analysis configuration."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple, Union

logger = logging.getLogger(__name__)


@dataclass
class AnalysisConfig:
    """Tuning knobs for package loading and template validation."""

    include_hints: bool = True
    include_unexported: bool = True
    literal_fields_win: bool = True
    warn_missing_type_hint: bool = False
    enable_extra_functions: bool = True
    workers: int = 4
    template_extensions: Tuple[str, ...] = (".tmpl", ".gotmpl", ".gohtml", ".tpl")

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        if self.workers <= 0:
            warnings.append("workers must be positive")
        if not self.template_extensions:
            warnings.append("template_extensions must not be empty")
        for ext in self.template_extensions:
            if not ext.startswith("."):
                warnings.append(f"template extension {ext!r} must start with '.'")
        return warnings

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AnalysisConfig":
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            name = key.replace("-", "_")
            if name not in known:
                logger.warning("ignoring unknown config key %r", key)
                continue
            if name == "template_extensions":
                value = tuple(value)
            kwargs[name] = value
        return cls(**kwargs)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "AnalysisConfig":
        with open(path, encoding="utf-8") as fh:
            return cls.from_mapping(json.load(fh))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["template_extensions"] = list(self.template_extensions)
        return data


__all__ = ["AnalysisConfig"]
