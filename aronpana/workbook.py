"""
Excel/CSV を「シート名 → 行リスト」の生データに変換する
"""

import csv
import io
import os
from dataclasses import dataclass, field

import pandas as pd


@dataclass
class Workbook:
    file_name: str
    sheet_names: list = field(default_factory=list)
    sheets: dict = field(default_factory=dict)  # シート名 -> [[セル, ...], ...]

    def rows(self, sheet_name: str) -> list:
        return self.sheets.get(sheet_name, [])


def _frame_to_rows(df: pd.DataFrame) -> list:
    """DataFrameを行リストに変換（空セルは""）"""
    df = df.astype(object).where(pd.notna(df), "")
    rows = df.values.tolist()
    # 末尾の空セルを落とす（列数判定のため）
    trimmed = []
    for row in rows:
        end = len(row)
        while end > 0 and row[end - 1] == "":
            end -= 1
        trimmed.append(row[:end])
    return trimmed


def _decode_csv(raw: bytes) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Excel保存のCSVはShift_JISのことが多い
        return raw.decode("cp932", errors="replace")


def _read_csv(file) -> pd.DataFrame:
    """
    CSVを列数不揃いのまま読む。
    先頭にタイトル行などの短い行があっても、最も長い行の列数に揃える。
    """
    if isinstance(file, str):
        with open(file, "rb") as f:
            raw = f.read()
    else:
        raw = file.read()
    text = raw if isinstance(raw, str) else _decode_csv(raw)
    width = max((len(r) for r in csv.reader(io.StringIO(text))), default=0)
    if width == 0:
        return pd.DataFrame()
    return pd.read_csv(io.StringIO(text), header=None, names=range(width), dtype=object,
                       keep_default_na=False, engine="python")


def read_workbook(file, file_name: str = "") -> Workbook:
    """
    アップロードファイル（bytes / ファイルライク / パス）を読み込む。
    CSVは1シート扱い。読込失敗時は pandas の例外をそのまま送出する。
    """
    name = file_name or getattr(file, "name", "") or (file if isinstance(file, str) else "")
    if isinstance(file, (bytes, bytearray)):
        file = io.BytesIO(file)

    ext = os.path.splitext(str(name))[1].lower()
    if ext == ".csv":
        df = _read_csv(file)
        sheet = os.path.splitext(os.path.basename(str(name)))[0] or "Sheet1"
        return Workbook(file_name=os.path.basename(str(name)), sheet_names=[sheet],
                        sheets={sheet: _frame_to_rows(df)})

    frames = pd.read_excel(file, sheet_name=None, header=None, dtype=object)
    sheets = {str(sheet): _frame_to_rows(df) for sheet, df in frames.items()}
    return Workbook(file_name=os.path.basename(str(name)), sheet_names=list(sheets),
                    sheets=sheets)
