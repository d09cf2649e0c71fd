import pytest

from aronpana.config import DEFAULT_AREA_BY_COL, SHIPPING_AREA_COLS
from aronpana.geo import (
    area_label, build_area_column_map, is_okinawa, prefecture_to_area_code,
    resolve_shipping_cost, to_area_code,
)
from aronpana.models import AREA_LABEL, AreaCode, Settings, ShippingRecord


@pytest.mark.parametrize("area", list(AreaCode))
def test_area_label_round_trip(area):
    assert to_area_code(area_label(area)) is area


def test_to_area_code_unknown_is_none():
    assert to_area_code("") is None
    assert to_area_code("海外") is None
    assert area_label(None) == "-"


@pytest.mark.parametrize("text, expected", [
    ("東京都", AreaCode.KANTO),
    ("大阪府", AreaCode.KANSAI),
    ("北海道", AreaCode.HOKKAIDO),
    ("青森県", AreaCode.KITA_TOHOKU),
    ("鹿児島県", AreaCode.MINAMI_KYUSHU),
    ("福岡県北九州市", AreaCode.KITA_KYUSHU),
    ("沖縄県", AreaCode.OKINAWA),
    ("関東", AreaCode.KANTO),
    ("", None),
])
def test_prefecture_to_area_code(text, expected):
    assert prefecture_to_area_code(text) is expected


def test_is_okinawa():
    assert is_okinawa("沖縄県那覇市")
    assert not is_okinawa("東京都")


def _shipping(size_band=150, **costs):
    return ShippingRecord(jan="1", size_band=size_band,
                          area_costs={AreaCode(k): v for k, v in costs.items()})


def test_resolve_uses_own_area():
    quote = resolve_shipping_cost(_shipping(kanto=500, kansai=700), "東京都", Settings())
    assert (quote.shipping_cost, quote.area, quote.fallback) == (500, AreaCode.KANTO, False)


def test_resolve_falls_back_in_order():
    quote = resolve_shipping_cost(_shipping(kansai=700, chubu=650), "北海道", Settings())
    assert quote.shipping_cost == 650
    assert quote.area is AreaCode.CHUBU
    assert quote.fallback


def test_resolve_unknown_prefecture_uses_fallback_chain():
    quote = resolve_shipping_cost(_shipping(kanto=500), "", Settings())
    assert quote.shipping_cost == 500
    assert quote.fallback


def test_resolve_no_costs_returns_zero():
    quote = resolve_shipping_cost(_shipping(), "東京都", Settings())
    assert quote.shipping_cost == 0
    assert quote.area is AreaCode.KANTO
    assert not quote.fallback


@pytest.mark.parametrize("prefecture", ["東京都", "沖縄県", "北海道", ""])
def test_small_parcel_setting_overrides_everything(prefecture):
    settings = Settings(default_shipping_small=120)
    quote = resolve_shipping_cost(_shipping(size_band=50, kanto=500, okinawa=2000), prefecture, settings)
    assert quote.shipping_cost == 120


def test_small_parcel_keeps_area_for_display():
    quote = resolve_shipping_cost(_shipping(size_band=50, kanto=500), "東京都", Settings(default_shipping_small=120))
    assert quote.area is AreaCode.KANTO


def test_small_parcel_without_setting_uses_table():
    quote = resolve_shipping_cost(_shipping(size_band=50, kanto=500), "東京都", Settings())
    assert quote.shipping_cost == 500


def test_okinawa_large_parcel_is_fixed():
    quote = resolve_shipping_cost(_shipping(size_band=200, okinawa=1800, kanto=500), "沖縄県", Settings())
    assert (quote.shipping_cost, quote.area, quote.fallback) == (3000, AreaCode.OKINAWA, False)

    missing = resolve_shipping_cost(_shipping(size_band=200, kanto=500), "沖縄県", Settings())
    assert (missing.shipping_cost, missing.area, missing.fallback) == (3000, AreaCode.OKINAWA, False)


def test_build_area_column_map_reads_header_labels():
    header = [""] * 22
    order = list(reversed(list(AreaCode)))
    for col, area in zip(SHIPPING_AREA_COLS, order):
        header[col] = AREA_LABEL[area]
    rows = [header, ["1"] * 22]
    mapping = build_area_column_map(rows, 0)
    assert mapping[SHIPPING_AREA_COLS[0]] is AreaCode.OKINAWA
    assert mapping[SHIPPING_AREA_COLS[-1]] is AreaCode.HOKKAIDO


def test_build_area_column_map_defaults_when_unreadable():
    rows = [["JAN"] + [""] * 21, ["1"] * 22]
    mapping = build_area_column_map(rows, 0)
    assert mapping == {col: AreaCode(DEFAULT_AREA_BY_COL[col]) for col in SHIPPING_AREA_COLS}
