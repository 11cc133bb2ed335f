from __future__ import annotations

from typing import Any, List

import pytest

HEADER = ["品名", "摘要", "数量", "単位", "金額"]


def build_estimate_sheet() -> List[List[Any]]:
    """
    50 rows: two title rows, the header at row index 2, 40 detail rows,
    then a subtotal and blank padding.
    """
    grid: List[List[Any]] = [
        ["御見積書", "", "", "", ""],
        ["工事名: 〇〇マンション外壁改修工事", "", "", "", ""],
        list(HEADER),
    ]
    for i in range(40):
        qty = (i * 7) % 200 + 1
        unit = "㎡" if i % 2 == 0 else "m"
        amount = 0 if i % 8 == 7 else qty * 1200
        grid.append([f"外壁補修{i + 1}", f"W-{300 + i * 10} H=50 シーリング打替え", qty, unit, amount])
    grid.append(["小計", "", "", "", 999999])
    while len(grid) < 50:
        grid.append(["", "", "", "", ""])
    return grid


def build_headerless_grid(rows: int = 30) -> List[List[Any]]:
    """item / long description / qty / unit / unit price / amount, no header row."""
    units = ["㎡", "m", "本", "箇所"]
    grid: List[List[Any]] = []
    for i in range(rows):
        qty = i % 20 + 1
        grid.append(
            [
                f"外壁塗装{i + 1}",
                f"シリコン系塗料 二回塗り 下地調整込み 工程{i + 1}",
                qty,
                units[i % len(units)],
                1500,
                qty * 1500,
            ]
        )
    return grid


@pytest.fixture
def estimate_sheet() -> List[List[Any]]:
    return build_estimate_sheet()


@pytest.fixture
def headerless_grid() -> List[List[Any]]:
    return build_headerless_grid()
