# tests/test_config.py
"""Tests for analysis configuration."""

import json
import logging

from gotmpls.config import AnalysisConfig


class TestAnalysisConfig:

    def test_defaults_are_valid(self):
        config = AnalysisConfig()
        assert config.validate() == []
        assert config.include_hints
        assert ".tmpl" in config.template_extensions

    def test_validation_problems(self):
        config = AnalysisConfig(workers=0, template_extensions=("tmpl",))
        problems = config.validate()
        assert "workers must be positive" in problems
        assert any("'tmpl'" in p for p in problems)

    def test_empty_extensions(self):
        problems = AnalysisConfig(template_extensions=()).validate()
        assert problems == ["template_extensions must not be empty"]

    def test_from_mapping_accepts_dashed_keys(self):
        config = AnalysisConfig.from_mapping({
            "warn-missing-type-hint": True,
            "template_extensions": [".html"],
        })
        assert config.warn_missing_type_hint
        assert config.template_extensions == (".html",)

    def test_unknown_keys_ignored(self, caplog):
        with caplog.at_level(logging.WARNING, logger="gotmpls.config"):
            config = AnalysisConfig.from_mapping({"colour": "blue", "workers": 2})
        assert config.workers == 2
        assert "colour" in caplog.text

    def test_load_json_file(self, tmp_path):
        path = tmp_path / "gotmpls.json"
        path.write_text(json.dumps({"workers": 1, "include_hints": False}))
        config = AnalysisConfig.load(path)
        assert config.workers == 1
        assert not config.include_hints

    def test_to_dict_round_trips(self):
        config = AnalysisConfig(workers=8, template_extensions=(".tpl",))
        data = config.to_dict()
        assert data["template_extensions"] == [".tpl"]
        assert AnalysisConfig.from_mapping(data) == config
