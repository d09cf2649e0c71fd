"""
データ読込 — 送料マスタ・販売実績・商品マスタの生データを正規化する

送料マスタ・商品マスタは読込のたびに全置換、販売実績は累積（受注番号で重複除外）。
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, Optional

from .config import (
    HEADER_SCAN_ROWS,
    PRODUCT_COLS,
    PRODUCT_HEADER_KEYWORDS,
    SALES_COLS,
    SALES_HEADER_KEYWORDS,
    SHEET_MIN_COLS,
    SHEET_SCAN_ROWS,
    SHIPPING_AREA_COLS,
    SHIPPING_COLS,
    SHIPPING_HEADER_KEYWORDS,
    SHIPPING_PREFERRED_SHEETS,
    UNKNOWN_MONTH,
)
from .geo import area_label, build_area_column_map
from .models import Maker, ProductRecord, SalesRecord, Settings, ShippingRecord
from .normalize import extract_month, extract_month_from_filename, to_number, to_str
from .workbook import Workbook

logger = logging.getLogger(__name__)

LogFn = Callable[[str], None]

_JAN_RE = re.compile(r"^\d{8,13}$")
_MAKER_STRIP_RE = re.compile(r"[\s（）()株]+")


def _cell(row: list, idx: int):
    return row[idx] if 0 <= idx < len(row) else ""


# ============================================
# シート・ヘッダー判定
# ============================================

def find_header_row(rows: list, keywords: Iterable[str]) -> int:
    """先頭15行からキーワードを含む最初の行をヘッダー行とする（なければ0）"""
    keywords = [k.lower() for k in keywords]
    for i, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        text = " ".join(to_str(c).lower() for c in (row or []))
        if any(kw in text for kw in keywords):
            return i
    return 0


def find_best_sheet(workbook: Workbook, prefer_names: Iterable[str], min_cols: int,
                    jan_col: int, log: LogFn = logger.info) -> Optional[str]:
    """
    複数シートから最適なデータシートを選ぶ。

    1. シート名に優先語を含み、5行超あるシート
    2. 行数 + 5×(列数を満たす行) + 10×(JANらしい値の行) の最大スコア
    """
    for pref in prefer_names:
        found = next((n for n in workbook.sheet_names if pref in n), None)
        if found and len(workbook.rows(found)) > 5:
            log(f"  → シート名一致で「{found}」を選択")
            return found

    best_sheet, best_score = None, 0
    for name in workbook.sheet_names:
        rows = workbook.rows(name)
        if len(rows) < 3:
            continue
        score = len(rows)
        jan_hits = 0
        for row in rows[1:SHEET_SCAN_ROWS]:
            row = row or []
            if len(row) >= min_cols:
                score += 5
            if _JAN_RE.match(to_str(_cell(row, jan_col))):
                jan_hits += 1
        score += jan_hits * 10
        if score > best_score:
            best_sheet, best_score = name, score

    if best_sheet:
        log(f"  → データ内容分析で「{best_sheet}」を選択 (スコア={best_score})")
        return best_sheet
    return workbook.sheet_names[0] if workbook.sheet_names else None


def detect_maker(text, settings: Settings) -> Maker:
    """メーカー表記からアロン/パナ/その他を判定する（アロン優先）"""
    t = _MAKER_STRIP_RE.sub("", to_str(text).lower())
    if not t:
        return Maker.OTHER
    for kw in settings.keyword_aron:
        kw = _MAKER_STRIP_RE.sub("", kw)
        if kw and kw in t:
            return Maker.ARON
    for kw in settings.keyword_pana:
        kw = _MAKER_STRIP_RE.sub("", kw)
        if kw and kw in t:
            return Maker.PANA
    return Maker.OTHER


# ============================================
# 送料マスタ
# ============================================

@dataclass(frozen=True)
class ShippingLoad:
    records: tuple
    skipped: int = 0
    sheet: Optional[str] = None
    header_row: int = 0
    area_map: dict = field(default_factory=dict)


def load_shipping(workbook: Workbook, log: LogFn = logger.info) -> ShippingLoad:
    """送料マスタを読み込む（既存データは全置換）"""
    log(f"--- 送料マスタ読込開始: {workbook.file_name} ---")
    log(f"シート数: {len(workbook.sheet_names)} → [{', '.join(workbook.sheet_names)}]")

    sheet = find_best_sheet(workbook, SHIPPING_PREFERRED_SHEETS, SHEET_MIN_COLS,
                            SHIPPING_COLS["jan"], log)
    rows = workbook.rows(sheet) if sheet else []
    log(f"使用シート: 「{sheet}」 / 総行数: {len(rows)}")

    header_row = find_header_row(rows, SHIPPING_HEADER_KEYWORDS)
    log(f"ヘッダー行検出: {header_row}行目 → データは{header_row + 1}行目から")

    area_map = build_area_column_map(rows, header_row)
    log("  エリア列(J-V): [" + " / ".join(area_label(area_map.get(c)) for c in SHIPPING_AREA_COLS) + "]")

    records = []
    skipped = 0
    for row in rows[header_row + 1:]:
        row = row or []
        jan = to_str(_cell(row, SHIPPING_COLS["jan"]))
        if not jan:
            skipped += 1
            continue
        area_costs = {}
        for col, area in area_map.items():
            cost = to_number(_cell(row, col))
            if cost > 0:
                area_costs[area] = cost
        records.append(ShippingRecord(
            jan=jan,
            name=to_str(_cell(row, SHIPPING_COLS["name"])),
            size_band=to_number(_cell(row, SHIPPING_COLS["size_band"])),
            area_costs=area_costs,
        ))

    log(f"送料マスタ: {len(records)}件読込 (スキップ: {skipped}件, ヘッダー後空行含む)")
    for sample in records[:2]:
        first = next(iter(sample.area_costs.items()), None)
        area_text = f"{area_label(first[0])}=¥{first[1]:,.0f}" if first else "なし"
        log(f"  サンプル: JAN=[{sample.jan}] 商品名=[{sample.name}] "
            f"サイズ帯=[{sample.size_band:g}] エリア送料=[{area_text}]")

    return ShippingLoad(records=tuple(records), skipped=skipped, sheet=sheet,
                        header_row=header_row, area_map=area_map)


# ============================================
# 販売実績
# ============================================

@dataclass(frozen=True)
class SalesLoad:
    records: tuple          # 累積後の全件（既存分を含む）
    added: int = 0
    duplicates: int = 0
    backfilled: int = 0
    months: tuple = ()
    maker_raw_values: tuple = ()


def load_sales(workbooks: Iterable[Workbook], existing: Iterable[SalesRecord],
               settings: Settings, log: LogFn = logger.info) -> SalesLoad:
    """
    販売実績を既存データに追加する。

    - JAN空の行はスキップ
    - 受注番号（空以外）は累積全体で一意。2回目以降は重複として捨てる
    - 月: B列の日付 → ファイル名 → "unknown"
    """
    records = list(existing)
    seen_orders = {r.order_no for r in records if r.order_no}
    month_values = {r.month for r in records if r.month}
    maker_values = {r.maker_raw for r in records if r.maker_raw}
    duplicates = 0
    added = 0
    workbooks = list(workbooks)

    for wb in workbooks:
        log(f"--- 販売実績読込: {wb.file_name} ---")
        file_month = extract_month_from_filename(wb.file_name)
        for sheet in wb.sheet_names:
            rows = wb.rows(sheet)
            log(f"  シート[{sheet}]: {len(rows)}行")
            header_row = find_header_row(rows, SALES_HEADER_KEYWORDS)
            log(f"  ヘッダー行: {header_row}行目")

            count = date_ok = date_ng = 0
            for row in rows[header_row + 1:]:
                row = row or []
                jan = to_str(_cell(row, SALES_COLS["jan"]))
                if not jan:
                    continue

                month = extract_month(_cell(row, SALES_COLS["date"]))
                if month:
                    date_ok += 1
                else:
                    date_ng += 1
                    month = file_month or UNKNOWN_MONTH
                month_values.add(month)

                maker_raw = to_str(_cell(row, SALES_COLS["maker"]))
                if maker_raw:
                    maker_values.add(maker_raw)

                order_no = to_str(_cell(row, SALES_COLS["order_no"]))
                if order_no and order_no in seen_orders:
                    duplicates += 1
                    continue
                if order_no:
                    seen_orders.add(order_no)

                records.append(SalesRecord(
                    order_no=order_no,
                    month=month,
                    maker=detect_maker(maker_raw, settings) if maker_raw else Maker.OTHER,
                    maker_raw=maker_raw,
                    sales_rep=to_str(_cell(row, SALES_COLS["sales_rep"])),
                    store=to_str(_cell(row, SALES_COLS["store"])),
                    store_code=to_str(_cell(row, SALES_COLS["store_code"])),
                    prefecture=to_str(_cell(row, SALES_COLS["prefecture"])),
                    jan=jan,
                    name=to_str(_cell(row, SALES_COLS["name"])),
                    qty=max(0.0, to_number(_cell(row, SALES_COLS["qty"]))),
                    unit_price=to_number(_cell(row, SALES_COLS["unit_price"])),
                    total_price=to_number(_cell(row, SALES_COLS["total_price"])),
                ))
                added += 1
                count += 1
            log(f"  → {count}件読込 (B列日付OK={date_ok}, B列日付NG={date_ng})")

    records, backfilled = backfill_store_codes(records)

    months = tuple(sorted(month_values))
    log(f"検出月一覧: [{', '.join(months)}]")
    log(f"S列メーカー表記一覧: [{' / '.join(sorted(maker_values))}]")
    counts = Counter(r.maker for r in records)
    log(f"メーカー判定結果: アロン={counts[Maker.ARON]}件 / パナ={counts[Maker.PANA]}件 / "
        f"その他={counts[Maker.OTHER]}件")
    if backfilled:
        log(f"得意先コード補完: {backfilled}件")
    log(f"販売実績追加: {added}件 / 重複受注番号スキップ: {duplicates}件 / 累計: {len(records)}件")

    return SalesLoad(records=tuple(records), added=added, duplicates=duplicates,
                     backfilled=backfilled, months=months,
                     maker_raw_values=tuple(sorted(maker_values)))


def backfill_store_codes(records: Iterable[SalesRecord]) -> tuple:
    """
    得意先名ごとに最頻の得意先コードを求め、コード欠落行に補完する。
    戻り値: (補完後レコードのlist, 補完件数)
    """
    records = list(records)
    code_counts = {}
    for r in records:
        if r.store and r.store_code:
            code_counts.setdefault(r.store, Counter())[r.store_code] += 1
    best_code = {store: c.most_common(1)[0][0] for store, c in code_counts.items()}

    filled = 0
    out = []
    for r in records:
        if r.store and not r.store_code and r.store in best_code:
            r = replace(r, store_code=best_code[r.store])
            filled += 1
        out.append(r)
    return out, filled


# ============================================
# 商品マスタ
# ============================================

@dataclass(frozen=True)
class ProductLoad:
    records: tuple
    skipped: int = 0
    overwritten: int = 0


def load_product(workbooks: Iterable[Workbook], log: LogFn = logger.info) -> ProductLoad:
    """商品マスタを読み込む（全置換。複数ファイル間のJAN重複は後勝ち）"""
    workbooks = list(workbooks)
    products = {}
    skipped = 0
    overwritten = 0

    for wb in workbooks:
        log(f"--- 商品マスタ読込: {wb.file_name} ---")
        log(f"シート数: {len(wb.sheet_names)} → [{', '.join(wb.sheet_names)}]")
        sheet = find_best_sheet(wb, [], SHEET_MIN_COLS, PRODUCT_COLS["jan"], log)
        rows = wb.rows(sheet) if sheet else []
        log(f"使用シート: 「{sheet}」 / 総行数: {len(rows)}")

        header_row = find_header_row(rows, PRODUCT_HEADER_KEYWORDS)
        log(f"ヘッダー行: {header_row}行目")

        file_count = 0
        for row in rows[header_row + 1:]:
            row = row or []
            jan = to_str(_cell(row, PRODUCT_COLS["jan"]))
            if not jan:
                skipped += 1
                continue
            if jan in products:
                overwritten += 1
            products[jan] = ProductRecord(
                jan=jan,
                name=to_str(_cell(row, PRODUCT_COLS["name"])),
                list_price=to_number(_cell(row, PRODUCT_COLS["list_price"])),
                cost=to_number(_cell(row, PRODUCT_COLS["cost"])),
                warehouse_cost=to_number(_cell(row, PRODUCT_COLS["warehouse_cost"])),
            )
            file_count += 1
        log(f"  {wb.file_name}: {file_count}件読込")

    records = tuple(products.values())
    log(f"商品マスタ: {len(records)}件 (ファイル数: {len(workbooks)}, スキップ: {skipped}件, "
        f"JAN重複上書き: {overwritten}件)")
    if records:
        s = records[0]
        log(f"  サンプル: JAN=[{s.jan}] 商品名=[{s.name}] 定価=[{s.list_price:g}] 原価=[{s.effective_cost:g}]")

    return ProductLoad(records=records, skipped=skipped, overwritten=overwritten)
