"""Tests for DependencyListParser."""

import json

import pytest

from cubx_resolver.parsers import DependencyListParser

from conftest import RESOURCES_PATH


class TestDependencyListParser:
    """Tests for parsing JSON list arguments."""

    def test_parse_literal(self):
        result = DependencyListParser.parse_root_dependencies(
            '[{"webpackageId": "package1@1.0.0", "artifactId": "util1"}]'
        )
        assert result == [{'webpackageId': 'package1@1.0.0', 'artifactId': 'util1'}]

    def test_parse_file(self):
        result = DependencyListParser.parse_root_dependencies(str(RESOURCES_PATH / "rootDependencies.json"))
        assert [d['artifactId'] for d in result] == ['util1', 'util2']

    def test_invalid_json(self):
        with pytest.raises(ValueError) as exc_info:
            DependencyListParser.parse_root_dependencies('[{"artifactId": ')
        assert 'rootDependencies' in str(exc_info.value)

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "deps.json"
        path.write_text(json.dumps({'artifactId': 'util1'}))
        with pytest.raises(ValueError) as exc_info:
            DependencyListParser.parse_root_dependencies(str(path))
        assert 'not a valid JSON list' in str(exc_info.value)

    def test_parse_excludes_skips_invalid_rules(self):
        result = DependencyListParser.parse_excludes(
            '[{"webpackageId": "package6@1.0.0", "artifactId": "util6"}, "package5", {"webpackageId": "x"}]'
        )
        assert result == [{'webpackageId': 'package6@1.0.0', 'artifactId': 'util6'}]
