"""Post-processing report fragments for the simulation driver scripts.

Each function returns the Octave statements of one report section,
parameterized by the registered ports (in port-number order) and the
frequencies of interest. Port ``n`` is read back as ``Un``/``In`` by
:func:`read_ui_statements`.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence

from .ports import Excitation

logger = logging.getLogger(__name__)

_BAND_EDGES = [
    "s11_db_left = s11_db(1:freq_idx);",
    "s11_db_right = s11_db(freq_idx:end);",
    "left_idx = find(s11_db_left >= -10)(end);",
    "right_idx = find(s11_db_right >= -10)(1);",
]


def _freq_index(freq: float, name: str = "freq_idx") -> str:
    return f"{name} = find(freq > {freq:g})(1) - 1;"


def _incident_reflected(idx: int, resistance: float, suffix: str = "") -> list[str]:
    return [
        f"uf_inc{suffix} = 0.5*(U{idx}.FD{{1}}.val + I{idx}.FD{{1}}.val * {resistance:f});",
        f"if_inc{suffix} = 0.5*(I{idx}.FD{{1}}.val - U{idx}.FD{{1}}.val / {resistance:f});",
        f"uf_ref{suffix} = U{idx}.FD{{1}}.val - uf_inc{suffix};",
        f"if_ref{suffix} = I{idx}.FD{{1}}.val - if_inc{suffix};",
    ]


def read_ui_statements(excitations: Sequence[Excitation]) -> list[str]:
    """Frequency vector and voltage/current readback for every port."""
    statements = ["freq = linspace(max([1e6, f0 - fc]), f0 + fc, 501);"]
    for idx, _ in enumerate(excitations):
        statements.extend(
            [
                f"U{idx} = ReadUI({{'port_ut{idx}', 'et'}}, [sim_path '/'], freq);",
                f"I{idx} = ReadUI('port_it{idx}', [sim_path '/'], freq);",
                "",
            ]
        )
    return statements


def s11_statements(excitations: Sequence[Excitation], frequencies: Sequence[float]) -> list[str]:
    """Reflection coefficient plot and -10 dB bandwidth per port."""
    statements: list[str] = []
    for idx, ex in enumerate(excitations):
        statements.extend(["# plot reflection coefficient S11", "figure"])
        statements.extend(_incident_reflected(idx, ex.resistance))
        statements.extend(
            [
                "s11 = uf_ref ./ uf_inc;",
                "plot(freq / 1e6, 20 * log10(abs(s11)), 'k-', 'Linewidth', 2);",
                "grid on",
                f"title('reflection coefficient S_{{11}} port{idx}');",
                "xlabel('frequency f / MHz');",
                "ylabel('reflection coefficient |S_{11}|');",
                f"print('-dpng', [plot_path '/S11_' num2str({idx}) '.png']);",
                "printf('\\n\\n');",
                "s11_db = 20 * log10(abs(s11));",
                "freq_idx = find(s11==min(s11));",
                "s11_min_freq_idx = freq_idx;",
                *_BAND_EDGES,
                "printf('Minimum S11 freq:%g band width(%g %g)%gMHz\\n', freq(freq_idx), freq(left_idx), "
                "freq(freq_idx + right_idx), (freq(freq_idx + right_idx) - freq(left_idx)) / 1e6);",
            ]
        )
        for freq in frequencies:
            statements.append(_freq_index(freq))
            statements.extend(_BAND_EDGES)
            statements.append(
                "printf('freq:%g band width(%g %g)%gMHz\\n', freq(freq_idx), freq(left_idx), "
                "freq(freq_idx + right_idx), (freq(freq_idx + right_idx) - freq(left_idx)) / 1e6);"
            )
        statements.extend(["printf('\\n\\n');", ""])
    return statements


def vswr_statements(excitations: Sequence[Excitation], frequencies: Sequence[float]) -> list[str]:
    """Standing-wave ratio plot, minimum and value at each frequency, per port."""
    statements: list[str] = []
    for idx, ex in enumerate(excitations):
        statements.extend(["# plot vswr", "figure"])
        statements.extend(_incident_reflected(idx, ex.resistance))
        statements.extend(
            [
                "s11 = uf_ref ./ uf_inc;",
                "vswr = (1 + abs(s11)) ./ (1 - abs(s11));",
                "plot(freq / 1e6, abs(vswr), 'k-', 'Linewidth', 2);",
                "set(gca, 'YScale', 'log');",
                "grid on",
                f"title('vswr port{idx}');",
                "xlabel('frequency f / MHz');",
                "ylabel('vswr');",
                f"print('-dpng', [plot_path '/VSWR_' num2str({idx}) '.png']);",
                "[vswr_min freq_idx] = min(abs(vswr));",
                "printf('Minimum SWR: %g@%gMHz\\n', abs(vswr_min), freq(freq_idx) / 1e6);",
            ]
        )
        for freq in frequencies:
            statements.append(_freq_index(freq))
            statements.append("printf('SWR: %g@%gMHz\\n', abs(vswr(freq_idx)), freq(freq_idx) / 1e6);")
        statements.extend(["printf('\\n\\n');", ""])
    return statements


def feed_point_impedance_statements(excitations: Sequence[Excitation], frequencies: Sequence[float]) -> list[str]:
    """Input impedance of every driven port."""
    statements: list[str] = []
    for idx, ex in enumerate(excitations):
        if not ex.excite:
            continue
        statements.extend(
            [
                "# plot feed point impedance",
                "figure",
                f"Zin = U{idx}.FD{{1}}.val ./ I{idx}.FD{{1}}.val;",
                "plot(freq / 1e6, real(Zin), 'k-', 'Linewidth', 2);",
                "hold on",
                "grid on",
                "plot(freq/1e6, imag(Zin), 'r--', 'Linewidth', 2);",
                "title('feed point impedance');",
                "xlabel('frequency f / MHz');",
                "ylabel('impedance Z_{in} / Ohm');",
                "legend('real', 'imag');",
                f"print('-dpng', [plot_path '/Zin_' num2str({idx}) '.png']);",
                "if exist('s11_min_freq_idx')",
                "    printf('freq:%g Z(%g + %gi)\\n', freq(s11_min_freq_idx), real(Zin(s11_min_freq_idx)), imag(Zin(s11_min_freq_idx)));",
                "end",
            ]
        )
        for freq in frequencies:
            statements.append(_freq_index(freq))
            statements.append("printf('freq:%g Z(%g + %gi)\\n', freq(freq_idx), real(Zin(freq_idx)), imag(Zin(freq_idx)));")
        statements.extend(["printf('\\n\\n');", ""])
    return statements


def two_port_statements(excitations: Sequence[Excitation]) -> list[str]:
    """S11/S21 of a two-port; empty (with a warning) unless exactly two ports exist."""
    if len(excitations) != 2:
        logger.warning("Two-port S-parameter report needs exactly 2 ports, got %d; section skipped", len(excitations))
        return []
    port0, port1 = excitations
    return [
        "# plot reflection coefficient S11/S21",
        *_incident_reflected(0, port0.resistance, suffix="0"),
        "s11 = uf_ref0 ./ uf_inc0;",
        *_incident_reflected(1, port1.resistance, suffix="1"),
        "s21 = uf_ref1 ./ uf_inc0;",
        "printf('\\n\\n');",
        "figure",
        "plot(freq / 1e6, 20 * log10(abs(s11)), 'k-', 'Linewidth', 2);",
        "hold on;",
        "grid on;",
        "plot(freq / 1e6, 20 * log10(abs(s21)), 'r--', 'Linewidth', 2);",
        "legend('S_{11}','S_{21}');",
        "ylabel('S-Parameter (dB)', 'FontSize',12);",
        "xlabel('frequency (MHz) \\rightarrow', 'FontSize', 12);",
        "print('-dpng', [plot_path '/S11_S21.png']);",
        "printf('\\n\\n');",
        "",
    ]


def _far_field_at(resonance: list[str], excitations: Sequence[Excitation]) -> list[str]:
    center = "'Center', (nf2ff_start + nf2ff_stop) * 0.5 * unit"
    statements = [
        "# NFFF contour plots",
        *resonance,
        "f_res = freq(f_res_ind);",
        f"nf2ff = CalcNF2FF(nf2ff, sim_path, f_res, [-180: 2: 180] * pi / 180, [0 90] * pi / 180, 'Mode', 1, {center});",
        "figure",
        "polarFF(nf2ff, 'xaxis', 'theta', 'param', [1 2], 'logscale', -20, 'xtics', 5); drawnow;",
        "print('-dpng', [plot_path '/FF.png']);",
        "figure",
        "plotFFdB(nf2ff, 'xaxis', 'theta', 'param', [1 2]); drawnow;",
        "print('-dpng', [plot_path '/FFdB.png']);",
        "Dlog = 10 * log10(nf2ff.Dmax);",
        "disp(['radiated power: Prad = ' num2str(nf2ff.Prad) ' Watt']);",
        "disp(['directivity: Dmax = ' num2str(Dlog) ' dBi']);",
    ]
    for idx, ex in enumerate(excitations):
        statements.extend(_incident_reflected(idx, ex.resistance))
        statements.append(f"P_in = 0.5 * U{idx}.FD{{1}}.val .* conj(I{idx}.FD{{1}}.val);")
        statements.append(
            f"disp(['efficiency(port{idx}): nu_rad = ' num2str(100*nf2ff.Prad ./ real(P_in(f_res_ind))) ' %']);"
        )
    statements.extend(
        [
            "# calculate 3D pattern",
            "phiRange = 0: 2: 360;",
            "thetaRange = 0: 2: 180;",
            "nf2ff = CalcNF2FF(nf2ff, sim_path, f_res, thetaRange*pi/180, phiRange*pi/180, "
            f"'Verbose', 2, 'Outfile', 'nf2ff_3D.h5', 'Mode', 1, {center});",
            "figure",
            "plotFF3D(nf2ff, 'logscale', -20); drawnow;",
            "print('-dpng', [plot_path '/FF3D.png']);",
            "E_far_normalized = nf2ff.E_norm{1} / max(nf2ff.E_norm{1}(:));",
            "DumpFF2VTK([sim_path '/FF_pattern.vtk'], E_far_normalized, thetaRange, phiRange);",
            "printf('\\n\\n');",
            "",
        ]
    )
    return statements


def far_field_statements(
    excitations: Sequence[Excitation],
    frequencies: Sequence[float],
    has_nf2ff_box: bool,
) -> list[str]:
    """Far-field pattern per frequency of interest, or at the S11 minimum.

    Returns an empty list (with a warning) when no nf2ff box was emitted.
    """
    if not has_nf2ff_box:
        logger.warning("No nf2ff box defined; far-field report skipped")
        return []
    if not frequencies:
        return _far_field_at(["f_res_ind = find(s11==min(s11));"], excitations)
    statements: list[str] = []
    for freq in frequencies:
        statements.extend(_far_field_at([_freq_index(freq, "f_res_ind")], excitations))
    return statements
