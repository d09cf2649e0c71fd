import datetime

import pytest

from aronpana.normalize import (
    extract_month, extract_month_from_filename, index_to_month, month_index,
    normalize_token, to_number, to_str,
)


@pytest.mark.parametrize("value, expected", [
    ("1,234", 1234.0),
    ("¥5,000", 5000.0),
    ("￥ 980", 980.0),
    ("12.5kg", 12.5),
    ("abc", 0.0),
    ("", 0.0),
    (None, 0.0),
    (float("nan"), 0.0),
    (True, 0.0),
    (42, 42.0),
])
def test_to_number(value, expected):
    assert to_number(value) == expected


def test_to_str_keeps_numeric_jan_as_integer():
    assert to_str(4901234567890.0) == "4901234567890"
    assert to_str(4901234567890.0004) == "4901234567890"
    assert to_str(12.5) == "12.5"
    assert to_str("  A商店 ") == "A商店"
    assert to_str(None) == ""
    assert to_str(float("nan")) == ""


def test_normalize_token_strips_fullwidth_space():
    assert normalize_token(" 東京　都 ") == "東京都"
    assert normalize_token("Kanto") == "kanto"


@pytest.mark.parametrize("value, expected", [
    (45413, "2024-05"),                       # Excelシリアル値
    (datetime.date(2023, 12, 31), "2023-12"),
    (datetime.datetime(2024, 1, 2, 10, 0), "2024-01"),
    ("2024/5/10", "2024-05"),
    ("2024-11-01 09:00", "2024-11"),
    ("2024年3月", "2024-03"),
    ("5/20/2024", "2024-05"),
    ("", None),
    ("不明", None),
    (123, None),
])
def test_extract_month(value, expected):
    assert extract_month(value) == expected


def test_extract_month_from_filename():
    assert extract_month_from_filename("販売実績_2024年7月.xlsx") == "2024-07"
    assert extract_month_from_filename("sales_2024-08.csv") == "2024-08"
    assert extract_month_from_filename("sales202409.xlsx") == "2024-09"
    assert extract_month_from_filename("sales202413.xlsx") is None
    assert extract_month_from_filename("sales.xlsx") is None


@pytest.mark.parametrize("value", [
    "2024-13-45",
    "2024/00/10",
    "99/99/2024",
    "13/01/2024",
    "2024年0月",
    "2024年13月",
])
def test_extract_month_rejects_out_of_range_month(value):
    assert extract_month(value) is None


def test_extract_month_from_filename_rejects_out_of_range_month():
    assert extract_month_from_filename("sales_2024-13.csv") is None
    assert extract_month_from_filename("販売実績_2024年0月.xlsx") is None
    # 範囲外の候補は飛ばして次の形式を見る
    assert extract_month_from_filename("2024-13_202405.csv") == "2024-05"


def test_month_index_round_trip():
    idx = month_index("2024-05")
    assert idx == 2024 * 12 + 4
    assert index_to_month(idx) == "2024-05"
    assert month_index("2024-12") + 1 == month_index("2025-01")
    assert month_index("unknown") is None
    assert month_index("2024-13") is None
