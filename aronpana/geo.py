"""
エリア判定 — 都道府県・地域名から13区分の配送エリアを求め、送料を決定する
"""

import re
from dataclasses import dataclass
from typing import Optional

from .config import (
    AREA_FALLBACK_ORDER,
    DEFAULT_AREA_BY_COL,
    OKINAWA_SHIPPING_COST,
    SHIPPING_AREA_COLS,
    SMALL_PARCEL_MAX_SIZE,
)
from .models import AREA_LABEL, AreaCode, Settings, ShippingRecord
from .normalize import normalize_token


# 判定順が意味を持つ（「北東北」は「東北」より先）
_AREA_KEYWORDS = [
    ("北海道", AreaCode.HOKKAIDO),
    ("北東北", AreaCode.KITA_TOHOKU),
    ("南東北", AreaCode.MINAMI_TOHOKU),
    ("関東", AreaCode.KANTO),
    ("信越", AreaCode.SHINETSU),
    ("北陸", AreaCode.HOKURIKU),
    ("中部", AreaCode.CHUBU),
    ("関西", AreaCode.KANSAI),
    ("中国", AreaCode.CHUGOKU),
    ("四国", AreaCode.SHIKOKU),
    ("北九州", AreaCode.KITA_KYUSHU),
    ("南九州", AreaCode.MINAMI_KYUSHU),
    ("沖縄", AreaCode.OKINAWA),
    # ざっくり分類（上のどれにも当たらない場合）
    ("九州", AreaCode.KITA_KYUSHU),
    ("東北", AreaCode.MINAMI_TOHOKU),
]

PREFECTURE_AREA = {
    "青森": AreaCode.KITA_TOHOKU, "岩手": AreaCode.KITA_TOHOKU, "秋田": AreaCode.KITA_TOHOKU,
    "宮城": AreaCode.MINAMI_TOHOKU, "山形": AreaCode.MINAMI_TOHOKU, "福島": AreaCode.MINAMI_TOHOKU,
    "茨城": AreaCode.KANTO, "栃木": AreaCode.KANTO, "群馬": AreaCode.KANTO, "埼玉": AreaCode.KANTO,
    "千葉": AreaCode.KANTO, "東京": AreaCode.KANTO, "神奈川": AreaCode.KANTO, "山梨": AreaCode.KANTO,
    "新潟": AreaCode.SHINETSU, "長野": AreaCode.SHINETSU,
    "富山": AreaCode.HOKURIKU, "石川": AreaCode.HOKURIKU, "福井": AreaCode.HOKURIKU,
    "岐阜": AreaCode.CHUBU, "静岡": AreaCode.CHUBU, "愛知": AreaCode.CHUBU, "三重": AreaCode.CHUBU,
    "滋賀": AreaCode.KANSAI, "京都": AreaCode.KANSAI, "大阪": AreaCode.KANSAI,
    "兵庫": AreaCode.KANSAI, "奈良": AreaCode.KANSAI, "和歌山": AreaCode.KANSAI,
    "鳥取": AreaCode.CHUGOKU, "島根": AreaCode.CHUGOKU, "岡山": AreaCode.CHUGOKU,
    "広島": AreaCode.CHUGOKU, "山口": AreaCode.CHUGOKU,
    "徳島": AreaCode.SHIKOKU, "香川": AreaCode.SHIKOKU, "愛媛": AreaCode.SHIKOKU, "高知": AreaCode.SHIKOKU,
    "福岡": AreaCode.KITA_KYUSHU, "佐賀": AreaCode.KITA_KYUSHU,
    "長崎": AreaCode.KITA_KYUSHU, "大分": AreaCode.KITA_KYUSHU,
    "熊本": AreaCode.MINAMI_KYUSHU, "宮崎": AreaCode.MINAMI_KYUSHU, "鹿児島": AreaCode.MINAMI_KYUSHU,
    "沖縄": AreaCode.OKINAWA,
    "北海道": AreaCode.HOKKAIDO,
}

_PREFECTURE_RE = re.compile("(" + "|".join(PREFECTURE_AREA) + ")")


def to_area_code(text) -> Optional[AreaCode]:
    """地域名テキストをエリアに変換する。判定不可はNone"""
    s = normalize_token(text)
    if not s:
        return None
    for keyword, area in _AREA_KEYWORDS:
        if keyword in s:
            return area
    return None


def area_label(area: Optional[AreaCode]) -> str:
    return AREA_LABEL.get(area, "-") if area else "-"


def prefecture_to_area_code(text) -> Optional[AreaCode]:
    """都道府県名（住所の一部でも可）からエリアを判定する"""
    s = normalize_token(text)
    if not s:
        return None
    direct = to_area_code(s)
    if direct is not None:
        return direct
    m = _PREFECTURE_RE.search(s)
    if not m:
        return None
    return PREFECTURE_AREA[m.group(1)]


def is_okinawa(prefecture) -> bool:
    return "沖縄" in normalize_token(prefecture)


def is_small_parcel(size_band: float) -> bool:
    return 0 < size_band <= SMALL_PARCEL_MAX_SIZE


@dataclass(frozen=True)
class ShippingQuote:
    shipping_cost: float
    area: Optional[AreaCode]
    fallback: bool


def resolve_shipping_cost(shipping: ShippingRecord, prefecture, settings: Settings) -> ShippingQuote:
    """
    送料を決定する。適用順:
      1. 自エリアの送料
      2. 補完順で最初に送料があるエリア（fallback=True）
      3. 沖縄県かつ小口以外 → 3000円固定
      4. 小口（サイズ帯100以下）で設定値あり → 設定値（エリアは表示用に残す）
    """
    area = prefecture_to_area_code(prefecture)
    cost = 0.0
    fallback = False

    if area is not None and shipping.cost_for(area) > 0:
        cost = shipping.cost_for(area)
    else:
        tried = set()
        for key in [area] + [AreaCode(a) for a in AREA_FALLBACK_ORDER]:
            if key is None or key in tried:
                continue
            tried.add(key)
            if shipping.cost_for(key) > 0:
                cost = shipping.cost_for(key)
                area = key
                fallback = True
                break

    small = is_small_parcel(shipping.size_band)

    if is_okinawa(prefecture) and not small:
        cost = OKINAWA_SHIPPING_COST
        area = AreaCode.OKINAWA
        fallback = False

    if small and settings.default_shipping_small > 0:
        cost = settings.default_shipping_small

    return ShippingQuote(shipping_cost=cost, area=area, fallback=fallback)


def build_area_column_map(rows: list, header_row: int) -> dict:
    """
    送料マスタのJ〜V列がどのエリアに対応するかを見出し行から判定する。
    候補: 2行目 → ヘッダー行 → ヘッダー行の1つ上。5列以上エリア名が読めた行を採用。
    """
    candidates = []
    for idx in (1, header_row, header_row - 1):
        if 0 <= idx < len(rows) and rows[idx]:
            candidates.append(rows[idx])

    for candidate in candidates:
        mapping = {}
        for col in SHIPPING_AREA_COLS:
            if col >= len(candidate):
                continue
            area = to_area_code(candidate[col])
            if area is not None:
                mapping[col] = area
        if len(mapping) >= 5:
            return mapping

    return {col: AreaCode(DEFAULT_AREA_BY_COL[col]) for col in SHIPPING_AREA_COLS}
