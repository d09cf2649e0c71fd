"""
突合処理
販売実績を送料マスタ・商品マスタとJANで内部結合する。

どの行でも例外を投げず、不一致は件数として集計する。
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from .geo import resolve_shipping_cost
from .models import ProductRecord, ReconciledRecord, SalesRecord, Settings, ShippingRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchStats:
    total: int = 0
    matched: int = 0
    excluded: int = 0
    no_shipping: int = 0
    no_product: int = 0
    no_area: int = 0          # エリア判定不可
    area_fallback: int = 0    # 補完エリアを使用
    zero_cost: int = 0        # 送料0円

    def summary(self) -> str:
        return (
            f"マッチング: {self.matched}件一致(3データ一致) / 除外: {self.excluded} / "
            f"送料未一致: {self.no_shipping} / 商品マスタ未一致: {self.no_product} / "
            f"地域判定不可: {self.no_area} / エリア補完: {self.area_fallback} / "
            f"送料0円: {self.zero_cost}"
        )


@dataclass(frozen=True)
class Reconciliation:
    records: tuple
    stats: MatchStats


def reconcile(sales: Iterable[SalesRecord], shipping: Iterable[ShippingRecord],
              products: Iterable[ProductRecord], settings: Settings) -> Reconciliation:
    shipping_map = {s.jan: s for s in shipping}
    product_map = {p.jan: p for p in products}

    records = []
    total = matched = excluded = no_shipping = no_product = 0
    no_area = area_fallback = zero_cost = 0

    for sale in sales:
        total += 1
        ship = shipping_map.get(sale.jan)
        product = product_map.get(sale.jan)
        if ship is None:
            no_shipping += 1
        if product is None:
            no_product += 1
        if ship is None or product is None:
            excluded += 1
            continue
        matched += 1

        quote = resolve_shipping_cost(ship, sale.prefecture, settings)
        if quote.area is None:
            no_area += 1
        if quote.fallback:
            area_fallback += 1
        if quote.shipping_cost <= 0:
            zero_cost += 1

        records.append(ReconciledRecord.from_sale(
            sale,
            shipping_cost=quote.shipping_cost,
            shipping_area=quote.area,
            effective_cost=product.effective_cost,
            list_price=product.list_price,
        ))

    stats = MatchStats(
        total=total, matched=matched, excluded=excluded,
        no_shipping=no_shipping, no_product=no_product,
        no_area=no_area, area_fallback=area_fallback, zero_cost=zero_cost,
    )
    logger.debug(stats.summary())
    return Reconciliation(records=tuple(records), stats=stats)
