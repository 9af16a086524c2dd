"""Tests for post-processing report sections."""

from __future__ import annotations

import logging

import pytest

from kicad_openems.csx_primitives import Point3D
from kicad_openems.mesh import Axis
from kicad_openems.ports import Excitation
from kicad_openems.reports import (
    far_field_statements,
    feed_point_impedance_statements,
    read_ui_statements,
    s11_statements,
    two_port_statements,
    vswr_statements,
)


def _port(resistance: float = 50.0, excite: bool = True) -> Excitation:
    return Excitation(Point3D(0, 0, 0), Point3D(1, 0, 0), Axis.X, resistance, excite=excite)


class TestReadUI:
    def test_one_readback_per_port(self) -> None:
        statements = read_ui_statements([_port(), _port()])
        assert statements[0] == "freq = linspace(max([1e6, f0 - fc]), f0 + fc, 501);"
        assert "U1 = ReadUI({'port_ut1', 'et'}, [sim_path '/'], freq);" in statements
        assert "I1 = ReadUI('port_it1', [sim_path '/'], freq);" in statements

    def test_no_ports(self) -> None:
        assert len(read_ui_statements([])) == 1


class TestS11AndVswr:
    """Tests for reflection sections."""

    def test_uses_port_resistance(self) -> None:
        statements = s11_statements([_port(75.0)], [])
        assert "uf_inc = 0.5*(U0.FD{1}.val + I0.FD{1}.val * 75.000000);" in statements

    def test_frequency_lines(self) -> None:
        statements = s11_statements([_port()], [2.4e9, 5e9])
        assert "freq_idx = find(freq > 2.4e+09)(1) - 1;" in statements
        assert "freq_idx = find(freq > 5e+09)(1) - 1;" in statements

    def test_vswr_plot_per_port(self) -> None:
        statements = vswr_statements([_port(), _port()], [])
        assert statements.count("# plot vswr") == 2
        assert "title('vswr port1');" in statements


class TestFeedPointImpedance:
    def test_only_excited_ports(self) -> None:
        statements = feed_point_impedance_statements([_port(excite=False), _port()], [])
        assert "Zin = U1.FD{1}.val ./ I1.FD{1}.val;" in statements
        assert "Zin = U0.FD{1}.val ./ I0.FD{1}.val;" not in statements
        assert statements.count("# plot feed point impedance") == 1

    def test_no_excited_ports(self) -> None:
        assert feed_point_impedance_statements([_port(excite=False)], [2.4e9]) == []


class TestTwoPort:
    """Tests for the two-port S-parameter section."""

    @pytest.mark.parametrize("count", [0, 1, 3])
    def test_skipped_without_exactly_two_ports(self, count: int, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert two_port_statements([_port() for _ in range(count)]) == []
        assert "exactly 2 ports" in caplog.text

    def test_two_ports(self) -> None:
        statements = two_port_statements([_port(50.0), _port(75.0)])
        assert "s11 = uf_ref0 ./ uf_inc0;" in statements
        assert "s21 = uf_ref1 ./ uf_inc0;" in statements
        assert "uf_inc1 = 0.5*(U1.FD{1}.val + I1.FD{1}.val * 75.000000);" in statements
        assert "uf_inc0 = 0.5*(U0.FD{1}.val + I0.FD{1}.val * 50.000000);" in statements


class TestFarField:
    """Tests for the far-field section."""

    def test_skipped_without_box(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert far_field_statements([_port()], [2.4e9], has_nf2ff_box=False) == []
        assert "nf2ff" in caplog.text

    def test_s11_minimum_without_frequencies(self) -> None:
        statements = far_field_statements([_port()], [], has_nf2ff_box=True)
        assert "f_res_ind = find(s11==min(s11));" in statements
        assert statements.count("# NFFF contour plots") == 1

    def test_one_pattern_per_frequency(self) -> None:
        statements = far_field_statements([_port()], [2.4e9, 5.8e9], has_nf2ff_box=True)
        assert statements.count("# NFFF contour plots") == 2
        assert "f_res_ind = find(freq > 2.4e+09)(1) - 1;" in statements
        assert "f_res_ind = find(freq > 5.8e+09)(1) - 1;" in statements

    def test_efficiency_per_port(self) -> None:
        statements = far_field_statements([_port(), _port()], [], has_nf2ff_box=True)
        efficiency = [s for s in statements if s.startswith("disp(['efficiency(port")]
        assert len(efficiency) == 2
