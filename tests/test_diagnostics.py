from __future__ import annotations

from model_import.common.diagnostics import ImportDiagnostics


def test_diagnostics_folds_consecutive_repeats() -> None:
    diag = ImportDiagnostics()
    for _ in range(3):
        diag.log_message(context="mesh: sub-mesh 'A'", message="skipped 1 face(s)")
    diag.log_message(context="mesh: sub-mesh 'B'", message="skipped 1 face(s)")

    items = diag.items()
    assert len(items) == 2
    assert items[0].count == 3
    assert diag.summary_lines()[0].endswith("(x3)")


def test_diagnostics_keeps_tail_and_tracebacks() -> None:
    diag = ImportDiagnostics(max_items=2)
    try:
        raise KeyError("slot")
    except KeyError as e:
        diag.log_exception(context="materials: material 0", exc=e)
    diag.log_message(context="c2", message="m2")
    diag.log_message(context="c3", message="m3")

    assert [it.context for it in diag.items()] == ["c2", "c3"]

    diag.clear()
    try:
        raise ValueError("boom")
    except ValueError as e:
        diag.log_exception(context="ctx", exc=e)
    (item,) = diag.items()
    assert "ValueError: boom" in item.message
    assert item.tb is not None and "ValueError" in item.tb
