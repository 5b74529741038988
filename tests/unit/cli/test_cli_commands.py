# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Unit tests for the fleetplane CLI.

Long-running commands are tested with their run_* coroutine patched out;
offline commands run for real against temporary files.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from textwrap import dedent
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from fleetplane import __version__
from fleetplane.cli.commands import EXIT_ERROR, EXIT_FALSE, EXIT_TRUE, cli
from fleetplane.errors import InfraConnectionError
from fleetplane.models import ModelReconcileEvent

VALID_ADAPTER = dedent(
    """\
    name: dns
    resourceType: clusters
    action:
      backend: inmemory
      template:
        cluster: "{{ resource.id }}"
    postconditions:
      available:
        - field: action.status.succeeded
          operator: gte
          value: 1
    """
)


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def adapter_file(tmp_path: Path) -> Path:
    path = tmp_path / "dns.yaml"
    path.write_text(VALID_ADAPTER)
    return path


class TestCliBasics:
    """Group-level options."""

    def test_help_lists_commands(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("api", "sentinel", "adapter", "dev", "rules", "config", "trigger"):
            assert command in result.output

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestConfigValidate:
    """``fleetplane config validate``."""

    def test_valid_file(self, runner: CliRunner, adapter_file: Path) -> None:
        result = runner.invoke(cli, ["config", "validate", str(adapter_file)])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_invalid_file_fails(
        self, runner: CliRunner, adapter_file: Path, tmp_path: Path
    ) -> None:
        broken = tmp_path / "broken.yaml"
        broken.write_text("name: Not_Valid\nresourceType: clusters\n")
        result = runner.invoke(cli, ["config", "validate", str(adapter_file), str(broken)])
        assert result.exit_code == 1
        assert "PASS" in result.output
        assert "FAIL" in result.output


class TestRulesEvaluate:
    """``fleetplane rules evaluate`` exit codes."""

    @pytest.fixture
    def context_file(self, tmp_path: Path) -> Path:
        path = tmp_path / "context.json"
        path.write_text(
            json.dumps({"resource": {"spec": {"provider": "gcp", "nodes": 3}}})
        )
        return path

    def _rules(self, tmp_path: Path, body: str) -> Path:
        path = tmp_path / "rules.yaml"
        path.write_text(dedent(body))
        return path

    def test_rules_hold(self, runner: CliRunner, tmp_path: Path, context_file: Path) -> None:
        rules = self._rules(
            tmp_path,
            """\
            rules:
              - field: resource.spec.provider
                operator: eq
                value: gcp
              - field: resource.spec.nodes
                operator: gte
                value: 3
            """,
        )
        result = runner.invoke(
            cli, ["rules", "evaluate", "--rules", str(rules), "--context", str(context_file)]
        )
        assert result.exit_code == EXIT_TRUE
        assert "true" in result.output

    def test_rules_fail(self, runner: CliRunner, tmp_path: Path, context_file: Path) -> None:
        rules = self._rules(
            tmp_path,
            """\
            - field: resource.spec.nodes
              operator: gt
              value: 5
            """,
        )
        result = runner.invoke(
            cli, ["rules", "evaluate", "--rules", str(rules), "--context", str(context_file)]
        )
        assert result.exit_code == EXIT_FALSE

    def test_evaluation_error(
        self, runner: CliRunner, tmp_path: Path, context_file: Path
    ) -> None:
        rules = self._rules(
            tmp_path,
            """\
            - field: resource.spec.zone
              operator: eq
              value: a
            """,
        )
        result = runner.invoke(
            cli, ["rules", "evaluate", "--rules", str(rules), "--context", str(context_file)]
        )
        assert result.exit_code == EXIT_ERROR

    def test_malformed_rules(
        self, runner: CliRunner, tmp_path: Path, context_file: Path
    ) -> None:
        rules = self._rules(tmp_path, "- field: resource.spec.nodes\n  operator: between\n")
        result = runner.invoke(
            cli, ["rules", "evaluate", "--rules", str(rules), "--context", str(context_file)]
        )
        assert result.exit_code == EXIT_ERROR


class TestLongRunningCommands:
    """Commands that hand off to a run_* coroutine."""

    def test_api(self, runner: CliRunner) -> None:
        run_api = AsyncMock(return_value=0)
        with patch("fleetplane.runtime.run_api", run_api):
            result = runner.invoke(cli, ["api"], env={"FLEET_API_PORT": "9999"})
        assert result.exit_code == 0
        assert run_api.await_args.args[0].port == 9999

    def test_api_invalid_config(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "api.yaml"
        path.write_text("store: postgres\n")
        result = runner.invoke(cli, ["api", "--config", str(path)])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_sentinel(self, runner: CliRunner, tmp_path: Path) -> None:
        shard = tmp_path / "shard.yaml"
        shard.write_text("resourceTypes: [clusters]\nlabelSelector: shard=a\n")
        run_sentinel = AsyncMock(return_value=0)
        with patch("fleetplane.runtime.run_sentinel", run_sentinel):
            result = runner.invoke(cli, ["sentinel", "--config", str(shard)])
        assert result.exit_code == 0
        assert run_sentinel.await_args.args[0].label_selector == "shard=a"

    def test_adapter(self, runner: CliRunner, adapter_file: Path) -> None:
        run_adapters = AsyncMock(return_value=0)
        with patch("fleetplane.runtime.run_adapters", run_adapters):
            result = runner.invoke(cli, ["adapter", "--config", str(adapter_file)], env={})
        assert result.exit_code == 0
        configs = run_adapters.await_args.args[0]
        assert [c.name for c in configs] == ["dns"]

    def test_adapter_missing_file(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["adapter", "--config", str(tmp_path / "none.yaml")])
        assert result.exit_code == 1

    def test_dev(self, runner: CliRunner, adapter_file: Path) -> None:
        run_dev = AsyncMock(return_value=0)
        with patch("fleetplane.runtime.run_dev", run_dev):
            result = runner.invoke(
                cli, ["dev", "--adapter", str(adapter_file), "--port", "0", "--poll-interval", "1"]
            )
        assert result.exit_code == 0
        configs, port, poll_interval = run_dev.await_args.args
        assert [c.name for c in configs] == ["dns"]
        assert (port, poll_interval) == (0, 1.0)

    def test_runtime_exit_code_propagates(self, runner: CliRunner) -> None:
        with patch("fleetplane.runtime.run_api", AsyncMock(return_value=1)):
            result = runner.invoke(cli, ["api"])
        assert result.exit_code == 1


class TestTrigger:
    """``fleetplane trigger``."""

    def test_publishes(self, runner: CliRunner) -> None:
        event = ModelReconcileEvent(
            resource_type="clusters", resource_id="c1", generation=2, reason="Manual"
        )
        trigger = AsyncMock(return_value=event)
        with patch("fleetplane.runtime.trigger_reconcile", trigger):
            result = runner.invoke(
                cli,
                ["trigger", "clusters", "c1", "--store-url", "http://api:8080"],
                env={"FLEET_KAFKA_BOOTSTRAP_SERVERS": "kafka:9092"},
            )
        assert result.exit_code == 0
        assert "generation 2" in result.output
        store_url, bus_config, resource_type, resource_id = trigger.await_args.args
        assert store_url == "http://api:8080"
        assert bus_config.type == "kafka"
        assert (resource_type, resource_id) == ("clusters", "c1")

    def test_failure(self, runner: CliRunner) -> None:
        trigger = AsyncMock(side_effect=InfraConnectionError("store unreachable"))
        with patch("fleetplane.runtime.trigger_reconcile", trigger):
            result = runner.invoke(cli, ["trigger", "clusters", "c1"])
        assert result.exit_code == 1
        assert "store unreachable" in result.output
