# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Marks every test under tests/unit/ with ``unit``.

Select with ``pytest -m unit`` or exclude with ``pytest -m "not unit"``.
"""

import pytest


def pytest_collection_modifyitems(
    config: pytest.Config,
    items: list[pytest.Item],
) -> None:
    unit_marker = pytest.mark.unit
    for item in items:
        if "tests/unit" not in str(item.path):
            continue
        if item.get_closest_marker("unit") is None:
            item.add_marker(unit_marker)
