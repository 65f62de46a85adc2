"""
Tests for project configuration loading.
"""

import json
import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from smarttest.errors import InvalidArgsError
from smarttest.models.run_result import TestFramework
from smarttest.utils.config import CONFIG_FILENAME, SmartTestConfig, load_config


class TestLoadConfig:
    """Test file and environment sources."""

    def test_defaults_without_file(self, tmp_path):
        config = load_config(str(tmp_path), environ={})

        assert config.framework == 'vitest'
        assert config.max_retries == 3
        assert config.timeout == 120.0
        assert config.test_timeout == 60.0
        assert config.parallel == 1

    def test_reads_config_file(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({
            'framework': 'jest',
            'max_retries': 5,
            'exclude': ['legacy/*'],
        }))

        config = load_config(str(tmp_path), environ={})

        assert config.framework == 'jest'
        assert config.max_retries == 5
        assert config.exclude == ['legacy/*']

    def test_environment_overrides_file(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({'framework': 'jest'}))

        config = load_config(str(tmp_path), environ={
            'SMARTTEST_FRAMEWORK': 'mocha',
            'SMARTTEST_MAX_RETRIES': '1',
            'SMARTTEST_TIMEOUT': '30.5',
        })

        assert config.framework == 'mocha'
        assert config.max_retries == 1
        assert config.timeout == 30.5

    def test_invalid_json(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("{not json")

        with pytest.raises(InvalidArgsError, match='Invalid JSON'):
            load_config(str(tmp_path), environ={})

    def test_non_object_json(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[1, 2]")

        with pytest.raises(InvalidArgsError, match='JSON object'):
            load_config(str(tmp_path), environ={})

    def test_invalid_environment_number(self, tmp_path):
        with pytest.raises(InvalidArgsError, match='max_retries'):
            load_config(str(tmp_path), environ={'SMARTTEST_MAX_RETRIES': 'many'})

    def test_unknown_keys_are_ignored(self, tmp_path, caplog):
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({'colour': 'blue'}))

        config = load_config(str(tmp_path), environ={})

        assert config.framework == 'vitest'
        assert 'colour' in caplog.text


class TestSmartTestConfig:
    """Test validation and conversion."""

    @pytest.mark.parametrize('kwargs', [
        {'framework': 'ava'},
        {'max_retries': -1},
        {'timeout': 0},
        {'test_timeout': -5},
        {'parallel': 0},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(InvalidArgsError):
            SmartTestConfig(**kwargs)

    def test_to_generation_options(self):
        config = SmartTestConfig(framework='jest', max_retries=2, output_dir='out')

        options = config.to_generation_options(run=True, fix=True, max_retries=None)

        assert options.framework is TestFramework.JEST
        assert options.max_retries == 2
        assert options.output_dir == 'out'
        assert options.self_healing
