# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Unit tests for action template rendering and status data extraction."""

from __future__ import annotations

import pytest

from fleetplane.errors import RuleEvaluationError
from fleetplane.rules import extract_fields, render_template

CONTEXT = {
    "resource": {"id": "c1", "generation": 2, "spec": {"nodes": 3, "ha": True}},
    "env": {"IMAGE": "registry.local/dns:1.2"},
    "action": {"status": {"succeeded": 1}},
}


class TestRenderTemplate:
    """Placeholder substitution."""

    def test_whole_placeholder_keeps_type(self) -> None:
        rendered = render_template(
            {"replicas": "{{ resource.spec.nodes }}", "ha": "{{resource.spec.ha}}"},
            CONTEXT,
        )
        assert rendered == {"replicas": 3, "ha": True}

    def test_embedded_placeholders_become_text(self) -> None:
        rendered = render_template(
            "cluster-{{ resource.id }}-g{{ resource.generation }}-{{ resource.spec.ha }}",
            CONTEXT,
        )
        assert rendered == "cluster-c1-g2-true"

    def test_adjacent_placeholders_render_separately(self) -> None:
        rendered = render_template("{{ resource.id }}-{{ resource.generation }}", CONTEXT)
        assert rendered == "c1-2"

    def test_renders_nested_lists_and_leaves_keys(self) -> None:
        template = {
            "spec": {
                "containers": [
                    {"image": "{{ env.IMAGE }}", "args": ["--id", "{{ resource.id }}"]}
                ],
                "{{ resource.id }}": 5,
            }
        }
        rendered = render_template(template, CONTEXT)
        container = rendered["spec"]["containers"][0]
        assert container == {"image": "registry.local/dns:1.2", "args": ["--id", "c1"]}
        assert rendered["spec"]["{{ resource.id }}"] == 5

    def test_unresolved_placeholder_raises(self) -> None:
        with pytest.raises(RuleEvaluationError) as exc_info:
            render_template({"x": "{{ resource.spec.zone }}"}, CONTEXT)
        assert exc_info.value.field == "resource.spec.zone"


class TestExtractFields:
    """Status data extraction skips missing paths."""

    def test_extracts_present_paths_only(self) -> None:
        data = extract_fields(
            {"succeeded": "action.status.succeeded", "zone": "resource.spec.zone"},
            CONTEXT,
        )
        assert data == {"succeeded": 1}
