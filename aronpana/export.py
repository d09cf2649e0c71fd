"""
CSV出力 — Excelでそのまま開けるCSV（UTF-8 BOM付き、全項目をダブルクォート）
"""

from typing import Iterable

from .models import MAKER_LABEL
from .normalize import to_str

PRODUCT_EXPORT_HEADER = ["JANコード", "商品名", "メーカー", "定価", "原価", "送料", "数量合計", "売上合計", "粗利合計"]
PRODUCT_EXPORT_FILE = "aron_pana_export.csv"


def _quote(value) -> str:
    text = to_str(value) if value is not None else ""
    return '"' + text.replace('"', '""') + '"'


def export_csv(header: list, rows: Iterable[list]) -> bytes:
    """ヘッダー行＋データ行をCSVバイト列にする"""
    lines = [",".join(_quote(v) for v in row) for row in [header, *rows]]
    return "\n".join(lines).encode("utf-8-sig")


def product_export_rows(buckets: Iterable) -> list:
    return [
        [b.jan, b.name, MAKER_LABEL.get(b.maker, b.maker.value), b.list_price,
         b.effective_cost, b.shipping_cost, b.qty, b.sales, b.gross]
        for b in buckets
    ]
