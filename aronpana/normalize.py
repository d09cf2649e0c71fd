"""
セル値の正規化（数値・文字列・月 yyyy-MM への変換）

どの関数も不正な値で例外を投げず、0 / "" / None に落とす。
"""

import datetime
import math
import numbers
import re
import warnings
from typing import Optional

import pandas as pd


_NUM_STRIP_RE = re.compile(r"[,¥￥\s]")
_NUM_PREFIX_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_YMD_RE = re.compile(r"(\d{4})[/\-](\d{1,2})[/\-]\d{1,2}")
_JP_YM_RE = re.compile(r"(\d{4})\s*年\s*(\d{1,2})\s*月")
_US_MDY_RE = re.compile(r"(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})")
_YEAR_RE = re.compile(r"\d{4}")
_FILE_YM_RE = re.compile(r"(\d{4})[-/](\d{1,2})")
_FILE_COMPACT_RE = re.compile(r"(\d{4})(\d{2})")

# Excelシリアル値の起点（1900年うるう年バグ互換）
EXCEL_EPOCH = datetime.date(1899, 12, 30)
SERIAL_MIN = 30000
SERIAL_MAX = 100000


def _is_number(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def to_number(value) -> float:
    """セル値を数値に変換する。空・数値でない文字列は0"""
    if value is None or isinstance(value, bool):
        return 0.0
    if _is_number(value):
        number = float(value)
        return 0.0 if math.isnan(number) or math.isinf(number) else number
    text = _NUM_STRIP_RE.sub("", str(value))
    match = _NUM_PREFIX_RE.match(text)
    if not match:
        return 0.0
    try:
        number = float(match.group(0))
    except (ValueError, OverflowError):
        return 0.0
    return 0.0 if math.isinf(number) else number


def to_str(value) -> str:
    """セル値を文字列に変換する（数値JANの指数表記崩れ対策あり）"""
    if value is None:
        return ""
    if _is_number(value):
        number = float(value)
        if math.isnan(number):
            return ""
        if math.isinf(number):
            return str(value)
        if number.is_integer():
            return str(int(number))
        # Excelの浮動小数誤差で 4901234567890.0001 のようになるケース
        rounded = round(number)
        if abs(number - rounded) < 0.001:
            return str(int(rounded))
        return str(value)
    return str(value).strip()


def normalize_token(value) -> str:
    """比較用に小文字化し、空白（全角含む）を除去する"""
    return re.sub(r"[\s　]", "", to_str(value).lower())


def _format_month(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def _checked_month(year: str, month: str) -> Optional[str]:
    """正規表現で拾った年・月を yyyy-MM にする（月が1〜12以外なら None）"""
    month_no = int(month)
    if not 1 <= month_no <= 12:
        return None
    return _format_month(int(year), month_no)


def extract_month(value) -> Optional[str]:
    """日付セル（シリアル値・日付型・文字列）から yyyy-MM を抽出する"""
    if value is None or value == "":
        return None

    if isinstance(value, (datetime.date, pd.Timestamp)):
        if pd.isna(value):
            return None
        return _format_month(value.year, value.month)

    # 1) Excelシリアル値
    if _is_number(value) and SERIAL_MIN < value < SERIAL_MAX:
        d = EXCEL_EPOCH + datetime.timedelta(days=float(value))
        if 2000 <= d.year <= 2099:
            return _format_month(d.year, d.month)

    text = to_str(value)
    if not text:
        return None

    # 2) yyyy/mm/dd, yyyy-mm-dd
    m = _YMD_RE.search(text)
    if m:
        return _checked_month(m.group(1), m.group(2))

    # 3) yyyy年mm月
    m = _JP_YM_RE.search(text)
    if m:
        return _checked_month(m.group(1), m.group(2))

    # 4) mm/dd/yyyy（US形式）
    m = _US_MDY_RE.search(text)
    if m:
        return _checked_month(m.group(3), m.group(1))

    # 5) 汎用の日付解析（西暦4桁を含む場合のみ）
    if not _YEAR_RE.search(text):
        return None
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed) or parsed.year < 2000:
        return None
    return _format_month(parsed.year, parsed.month)


def extract_month_from_filename(file_name: str) -> Optional[str]:
    """ファイル名から yyyy-MM を推定する（販売実績の月フォールバック用）"""
    name = to_str(file_name)
    for pattern in (_JP_YM_RE, _FILE_YM_RE, _FILE_COMPACT_RE):
        m = pattern.search(name)
        if m:
            month = _checked_month(m.group(1), m.group(2))
            if month:
                return month
    return None


def month_index(month: str) -> Optional[int]:
    """yyyy-MM を連続した整数（年×12＋月-1）に変換する"""
    m = re.fullmatch(r"(\d{4})-(\d{2})", to_str(month))
    if not m:
        return None
    month_no = int(m.group(2))
    if not 1 <= month_no <= 12:
        return None
    return int(m.group(1)) * 12 + month_no - 1


def index_to_month(index: int) -> str:
    """month_index の逆変換"""
    year, month0 = divmod(index, 12)
    return _format_month(year, month0 + 1)
