# SPDX-License-Identifier: MIT
"""Pytest configuration and shared fixtures for test suite.

This module provides:
- Deterministic test environment setup
- A small two-copper-layer board with tracks, an arc, a via, a zone and
  three footprints (R1 and C1 two-pad passives, J1 through-hole connector)
"""
from __future__ import annotations

import copy
import os
from typing import Any

import pytest

from kicad_openems.board import Board
from kicad_openems.mesh import Mesh


# ---------------------------------------------------------------------------
# Environment Setup
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest environment for determinism.

    Sets environment variables to ensure reproducible test execution.
    """
    deterministic_env = {
        "LC_ALL": "C",
        "LANG": "C",
        "TZ": "UTC",
        "PYTHONHASHSEED": "0",
    }
    for key, value in deterministic_env.items():
        os.environ.setdefault(key, value)


# ---------------------------------------------------------------------------
# Board Data
# ---------------------------------------------------------------------------

BOARD_DATA: dict[str, Any] = {
    "layers": [
        {"name": "F.Cu", "type": "copper", "thickness": 0.035},
        {"name": "core", "type": "dielectric", "thickness": 1.6, "epsilon_r": 4.5},
        {"name": "B.Cu", "type": "copper", "thickness": 0.035},
    ],
    "edges": {"left": 0.0, "right": 20.0, "top": 0.0, "bottom": 10.0},
    "nets": [
        {"id": 1, "name": "GND"},
        {"id": 2, "name": "SIG"},
    ],
    "segments": [
        {"start": [1.0, 5.0], "end": [9.0, 5.0], "width": 0.5, "layer": "F.Cu", "net": 2},
        {"start": [9.0, 5.0], "mid": [10.0, 6.0], "end": [11.0, 5.0], "width": 0.5, "layer": "F.Cu", "net": 2},
        # Shorter than half its width
        {"start": [5.0, 5.0], "end": [5.1, 5.0], "width": 0.5, "layer": "F.Cu", "net": 2},
    ],
    "vias": [
        {"at": [15.0, 5.0], "size": 0.6, "drill": 0.3, "layers": ["F.Cu", "B.Cu"], "net": 1},
    ],
    "zones": [
        {"points": [[0.0, 0.0], [20.0, 0.0], [20.0, 10.0], [0.0, 10.0]], "layer": "B.Cu", "net": 1},
    ],
    "footprints": [
        {
            "reference": "R1",
            "value": "4.7k",
            "layer": "F.Cu",
            "at": [5.0, 2.0],
            "pads": [
                {"number": "1", "at": [-1.0, 0.0], "size_w": 1.0, "size_h": 0.8, "layers": ["F.Cu"], "net": 2},
                {"number": "2", "at": [1.0, 0.0], "size_w": 1.0, "size_h": 0.8, "layers": ["F.Cu"], "net": 1},
            ],
        },
        {
            "reference": "C1",
            "value": "10n",
            "layer": "F.Cu",
            "at": [15.0, 2.0],
            "pads": [
                {"number": "1", "at": [0.0, -1.0], "size_w": 0.8, "size_h": 0.8, "layers": ["F.Cu"], "net": 2},
                {"number": "2", "at": [0.0, 1.0], "size_w": 0.8, "size_h": 0.8, "layers": ["F.Cu"], "net": 1},
            ],
        },
        {
            "reference": "J1",
            "value": "SMA",
            "layer": "F.Cu",
            "at": [10.0, 8.0],
            "graphics": [
                {"type": "rect", "layer": "F.Cu", "fill": "solid", "start": [-1.0, -1.0], "end": [1.0, 1.0]},
                {"type": "rect", "layer": "F.SilkS", "fill": "solid", "start": [-2.0, -2.0], "end": [2.0, 2.0]},
            ],
            "pads": [
                {
                    "number": "1",
                    "type": "thru_hole",
                    "shape": "circle",
                    "at": [0.0, 0.0],
                    "size_w": 1.5,
                    "size_h": 1.5,
                    "drill": 0.8,
                    "layers": ["*.Cu"],
                    "net": 2,
                },
            ],
        },
    ],
}


def board_data() -> dict[str, Any]:
    """Fresh deep copy of the shared board description."""
    return copy.deepcopy(BOARD_DATA)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def board_dict() -> dict[str, Any]:
    return board_data()


@pytest.fixture
def board() -> Board:
    """Board with copper thickness ignored (the generator default)."""
    return Board.from_dict(board_data(), ignore_cu_thickness=True)


@pytest.fixture
def thick_board() -> Board:
    """Board with copper thickness taken into account."""
    return Board.from_dict(board_data(), ignore_cu_thickness=False)


@pytest.fixture
def mesh() -> Mesh:
    return Mesh()
