"""Tests for the command line runner."""

from datetime import timedelta
from json import loads
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from click.testing import CliRunner

from pytest_marcus.__main__ import cli
from pytest_marcus.runner import RunReport

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

TEST_USERS = '''---
root: {root}
---

# Users

## Create user
POST /users

```json
{{"name": "alice"}}
```

Asserts:
- Status is 201
- Field `name` equals `alice`

Save:
- Field `id` as `user_id`

## Fetch user
GET /users/{{{{user_id}}}}

Asserts:
- Status is 200
- Body contains `name`
'''

TEST_MISSING = '''---
root: {root}
---

## Missing page
GET /nowhere

Asserts:
- Status is 200
'''


@pytest.fixture
def runner() -> CliRunner:
    """Provide a click runner."""
    return CliRunner()


@pytest.fixture
def suite(tmp_path: Path, http_server: str) -> Path:
    """Write a suite with one passing and one failing file."""
    (tmp_path / 'test_users.md').write_text(TEST_USERS.format(root=http_server), encoding='utf-8')
    (tmp_path / 'test_missing.md').write_text(TEST_MISSING.format(root=http_server), encoding='utf-8')
    (tmp_path / 'README.md').write_text('# Notes\n\nNo tests here.\n', encoding='utf-8')

    return tmp_path


def test_run_file(runner: CliRunner, suite: Path) -> None:
    """Run a passing file."""
    target = suite / 'test_users.md'

    result = runner.invoke(cli, ['run', str(target)])

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0] == f'{target} (2 tests)'
    assert '  ✓ Create user' in lines
    assert '  ✓ Fetch user' in lines
    assert lines[-1].startswith('2 passed in ')


def test_run_failing_file(runner: CliRunner, suite: Path) -> None:
    """Exit with status 1 and show the failure with a response preview."""
    result = runner.invoke(cli, ['run', str(suite / 'test_missing.md')])

    assert result.exit_code == 1
    assert '  ✗ Missing page' in result.output
    assert '    → status assertion failed: expected 200, got 404' in result.output
    assert '       Response: {"error": "not found"}' in result.output
    assert result.output.splitlines()[-1].startswith('0 passed, 1 failed in ')


def test_run_quiet(runner: CliRunner, suite: Path) -> None:
    """Hide passing tests and response previews."""
    result = runner.invoke(cli, ['run', '--quiet', str(suite)])

    assert result.exit_code == 1
    assert 'Create user' not in result.output
    assert '✗ Missing page' in result.output
    assert 'Response:' not in result.output


def test_run_directory(runner: CliRunner, suite: Path) -> None:
    """Group results by file when several files run."""
    result = runner.invoke(cli, ['run', str(suite)])

    assert result.exit_code == 1
    lines = result.output.splitlines()
    assert lines[0] == f'{suite} (2 files, 3 tests)'
    assert str(suite / 'test_missing.md') in lines
    assert str(suite / 'test_users.md') in lines
    assert lines.index(str(suite / 'test_missing.md')) < lines.index(str(suite / 'test_users.md'))
    assert lines[-1].startswith('2 passed, 1 failed in ')


def test_run_parallel(runner: CliRunner, suite: Path) -> None:
    """Run tests without sharing saved values in parallel mode."""
    result = runner.invoke(cli, ['run', '--parallel', str(suite / 'test_users.md')])

    assert result.exit_code == 1
    assert '  ✓ Create user' in result.output
    assert '  ✗ Fetch user' in result.output


def test_run_only(runner: CliRunner, suite: Path) -> None:
    """Run a single test counted across files."""
    result = runner.invoke(cli, ['run', '--only', '2', str(suite)])

    assert result.exit_code == 0, result.output
    assert result.output.splitlines()[0] == f'{suite / "test_users.md"} (1 tests)'
    assert '✓ Create user' in result.output
    assert 'Fetch user' not in result.output


def test_run_only_out_of_range(runner: CliRunner, suite: Path) -> None:
    """Reject test numbers beyond the discovered tests."""
    result = runner.invoke(cli, ['run', '--only', '5', str(suite)])

    assert result.exit_code == 2
    assert 'test number 5 is out of range, found 3 tests' in result.output


def test_run_empty_directory(runner: CliRunner, tmp_path: Path) -> None:
    """Report directories without markdown files."""
    result = runner.invoke(cli, ['run', str(tmp_path)])

    assert result.exit_code == 0
    assert result.output == 'No test files found.\n'


def test_run_without_tests(runner: CliRunner, tmp_path: Path) -> None:
    """Report markdown files declaring no test."""
    (tmp_path / 'notes.md').write_text('# Notes\n', encoding='utf-8')

    result = runner.invoke(cli, ['run', str(tmp_path)])

    assert result.exit_code == 0
    assert result.output == 'No tests found.\n'


def test_run_missing_target(runner: CliRunner, tmp_path: Path) -> None:
    """Reject targets that do not exist."""
    result = runner.invoke(cli, ['run', str(tmp_path / 'missing.md')])

    assert result.exit_code == 2
    assert 'does not exist' in result.output


def test_run_settings_overrides(runner: CliRunner, suite: Path, mocker: 'MockerFixture') -> None:
    """Pass command line overrides to the executor settings."""
    executor = mocker.patch('pytest_marcus.__main__.TestExecutor')
    scheduler = mocker.patch('pytest_marcus.__main__.Scheduler')
    scheduler.return_value.run.return_value = RunReport(duration=timedelta())

    result = runner.invoke(cli, ['run', '--workers', '3', '--timeout', '2.5', '--parallel', str(suite)])

    assert result.exit_code == 0, result.output
    settings, = executor.call_args.args
    assert settings.workers == 3
    assert settings.timeout == 2.5
    assert scheduler.return_value.run.call_args.kwargs == {'parallel': True}


def test_parse(runner: CliRunner, suite: Path, http_server: str) -> None:
    """Print parsed definitions as JSON."""
    result = runner.invoke(cli, ['parse', str(suite / 'test_users.md')])

    assert result.exit_code == 0, result.output
    file, = loads(result.output)
    create, fetch = file['tests']
    assert create['name'] == 'Create user'
    assert create['method'] == 'POST'
    assert create['url'] == f'{http_server}/users'
    assert create['saves'] == [{'field': 'id', 'variable': 'user_id'}]
    assert fetch['url'] == f'{http_server}/users/{{{{user_id}}}}'


def test_parse_keeps_files_without_tests(runner: CliRunner, suite: Path) -> None:
    """List every markdown file, including those declaring no test."""
    result = runner.invoke(cli, ['parse', str(suite)])

    assert result.exit_code == 0, result.output
    assert [Path(file['path']).name for file in loads(result.output)] == [
        'README.md',
        'test_missing.md',
        'test_users.md',
    ]
