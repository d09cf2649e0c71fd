"""
集計 — 月次×メーカー、販売店、商品別の集計と実利益の算出

実利益 = 商品粗利合計 + リベート合計 − (倉庫料×月数 + 出庫数×出庫料)
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, NamedTuple, Optional

from .config import UNKNOWN_STORE, UNSET_REP
from .models import REBATE_MAKERS, Maker, ReconciledRecord, Settings
from .reconcile import MatchStats, reconcile

logger = logging.getLogger(__name__)

PriceFactor = Callable[[ReconciledRecord], float]


class _Acc:
    """売上・原価・送料・粗利・数量の加算器"""

    __slots__ = ("sales", "cost", "shipping", "gross", "qty")

    def __init__(self):
        self.sales = self.cost = self.shipping = self.gross = self.qty = 0.0

    def add(self, sales: float, cost: float, shipping: float, qty: float):
        self.sales += sales
        self.cost += cost
        self.shipping += shipping
        self.gross += sales - cost - shipping
        self.qty += qty

    def add_record(self, rec: ReconciledRecord):
        self.add(rec.sales_amount, rec.total_cost, rec.total_shipping, rec.qty)


def _ratio(num: float, den: float) -> float:
    return num / den if den > 0 else 0.0


# ============================================
# 月次×メーカー
# ============================================

@dataclass(frozen=True)
class RebateBreakdown:
    variable: float = 0.0
    achieve: float = 0.0
    car: float = 0.0

    @property
    def fixed(self) -> float:
        return self.achieve + self.car

    @property
    def total(self) -> float:
        return self.variable + self.fixed


@dataclass(frozen=True)
class WarehouseBreakdown:
    base: float = 0.0   # 倉庫料の按分額
    out: float = 0.0    # 出庫料

    @property
    def total(self) -> float:
        return self.base + self.out


@dataclass(frozen=True)
class MonthlyBucket:
    month: str
    maker: Maker
    sales: float = 0.0
    cost: float = 0.0
    shipping: float = 0.0
    gross: float = 0.0
    qty: float = 0.0
    rebate: RebateBreakdown = field(default_factory=RebateBreakdown)
    warehouse: WarehouseBreakdown = field(default_factory=WarehouseBreakdown)

    @property
    def real_profit(self) -> float:
        return self.gross + self.rebate.total - self.warehouse.total


def calc_rebate(sales: float, month: str, maker: Maker, settings: Settings) -> RebateBreakdown:
    fixed = settings.monthly_rebate(month, maker)
    return RebateBreakdown(
        variable=sales * settings.rebate_rate(maker),
        achieve=fixed.achieve,
        car=fixed.car,
    )


def calc_warehouse(sales: float, qty: float, month_sales: float, settings: Settings) -> WarehouseBreakdown:
    """月の倉庫料を、その月の売上シェアで按分する"""
    base = settings.warehouse_fee * (sales / month_sales) if month_sales > 0 else 0.0
    return WarehouseBreakdown(base=base, out=qty * settings.warehouse_out_fee)


@dataclass(frozen=True)
class MonthlySummary:
    buckets: dict               # (month, Maker) -> MonthlyBucket
    month_sales_totals: dict    # month -> 売上
    total_rebate: float
    rebate_by_maker: dict
    minus_by_maker: dict


def build_monthly(records: Iterable[ReconciledRecord], settings: Settings,
                  price_factor: Optional[PriceFactor] = None) -> MonthlySummary:
    """
    月次×メーカーの集計。販売のある月では、そのメーカーの販売がなくても
    固定リベートがあれば空バケットを作る。
    price_factor を渡すと単価をその倍率で置き換えて集計する（シミュレーション用）。
    """
    accs = {}
    months = set()
    for rec in records:
        factor = price_factor(rec) if price_factor else 1.0
        sales = rec.unit_price * factor * rec.qty
        accs.setdefault((rec.month, rec.maker), _Acc()).add(
            sales, rec.total_cost, rec.total_shipping, rec.qty)
        months.add(rec.month)

    for month in sorted(months):
        for maker in REBATE_MAKERS:
            if (month, maker) not in accs and settings.monthly_rebate(month, maker).fixed != 0:
                accs[(month, maker)] = _Acc()

    month_sales = {}
    for (month, _), acc in accs.items():
        month_sales[month] = month_sales.get(month, 0.0) + acc.sales

    buckets = {}
    rebate_by_maker = {m: 0.0 for m in Maker}
    minus_by_maker = {m: 0.0 for m in Maker}
    total_rebate = 0.0
    for key in sorted(accs, key=lambda k: (k[0], k[1].value)):
        month, maker = key
        acc = accs[key]
        rebate = calc_rebate(acc.sales, month, maker, settings)
        warehouse = calc_warehouse(acc.sales, acc.qty, month_sales[month], settings)
        buckets[key] = MonthlyBucket(
            month=month, maker=maker,
            sales=acc.sales, cost=acc.cost, shipping=acc.shipping,
            gross=acc.gross, qty=acc.qty,
            rebate=rebate, warehouse=warehouse,
        )
        rebate_by_maker[maker] += rebate.total
        minus_by_maker[maker] += warehouse.total
        total_rebate += rebate.total

    return MonthlySummary(buckets=buckets, month_sales_totals=month_sales,
                          total_rebate=total_rebate, rebate_by_maker=rebate_by_maker,
                          minus_by_maker=minus_by_maker)


# ============================================
# 販売店
# ============================================

@dataclass(frozen=True)
class StoreMakerBucket:
    store: str
    maker: Maker
    sales: float = 0.0
    cost: float = 0.0
    shipping: float = 0.0
    gross: float = 0.0
    qty: float = 0.0


class StoreSliceKey(NamedTuple):
    store: str
    store_code: str
    sales_rep: str
    month: str
    maker: Maker


@dataclass(frozen=True)
class StoreSlice:
    """販売店×コード×担当×月×メーカーの集計（絞込み表示の元データ）"""
    key: StoreSliceKey
    sales: float = 0.0
    cost: float = 0.0
    shipping: float = 0.0
    gross: float = 0.0
    qty: float = 0.0
    rate_num: float = 0.0   # Σ(単価×数量)  定価>0・数量>0 の行のみ
    rate_den: float = 0.0   # Σ(定価×数量)


def build_store_agg(records: Iterable[ReconciledRecord]) -> dict:
    accs = {}
    for rec in records:
        accs.setdefault((rec.store, rec.maker), _Acc()).add_record(rec)
    return {
        key: StoreMakerBucket(store=key[0], maker=key[1], sales=a.sales, cost=a.cost,
                              shipping=a.shipping, gross=a.gross, qty=a.qty)
        for key, a in accs.items()
    }


def build_store_slices(records: Iterable[ReconciledRecord]) -> dict:
    accs = {}
    rates = {}
    for rec in records:
        key = StoreSliceKey(rec.store, rec.store_code, rec.sales_rep, rec.month, rec.maker)
        accs.setdefault(key, _Acc()).add_record(rec)
        num_den = rates.setdefault(key, [0.0, 0.0])
        if rec.list_price > 0 and rec.qty > 0:
            num_den[0] += rec.unit_price * rec.qty
            num_den[1] += rec.list_price * rec.qty
    return {
        key: StoreSlice(key=key, sales=a.sales, cost=a.cost, shipping=a.shipping,
                        gross=a.gross, qty=a.qty, rate_num=rates[key][0], rate_den=rates[key][1])
        for key, a in accs.items()
    }


@dataclass(frozen=True)
class StoreEntry:
    store: str
    store_code: str
    sales_rep: str
    sales: float
    cost: float
    shipping: float
    gross: float
    qty: float
    rate: float        # 粗利率
    aron_rate: float   # アロン掛け率
    pana_rate: float   # パナ掛け率


def roll_up_stores(slices: Iterable[StoreSlice], maker: Optional[Maker] = None,
                   month: Optional[str] = None, rep: Optional[str] = None) -> list:
    """スライスを絞込み条件で販売店単位に再集計する"""
    groups = {}
    for s in slices:
        k = s.key
        if maker is not None and k.maker is not maker:
            continue
        if month is not None and k.month != month:
            continue
        if rep is not None and k.sales_rep != rep:
            continue
        store = k.store or UNKNOWN_STORE
        g = groups.setdefault(store, {
            "acc": _Acc(), "codes": set(), "reps": set(),
            Maker.ARON: [0.0, 0.0], Maker.PANA: [0.0, 0.0],
        })
        acc = g["acc"]
        acc.sales += s.sales
        acc.cost += s.cost
        acc.shipping += s.shipping
        acc.gross += s.gross
        acc.qty += s.qty
        if k.store_code:
            g["codes"].add(k.store_code)
        if k.sales_rep:
            g["reps"].add(k.sales_rep)
        if k.maker in REBATE_MAKERS:
            g[k.maker][0] += s.rate_num
            g[k.maker][1] += s.rate_den

    entries = []
    for store, g in groups.items():
        acc = g["acc"]
        entries.append(StoreEntry(
            store=store,
            store_code=" / ".join(sorted(g["codes"])),
            sales_rep=" / ".join(sorted(g["reps"])) or UNSET_REP,
            sales=acc.sales, cost=acc.cost, shipping=acc.shipping,
            gross=acc.gross, qty=acc.qty,
            rate=_ratio(acc.gross, acc.sales),
            aron_rate=_ratio(*g[Maker.ARON]),
            pana_rate=_ratio(*g[Maker.PANA]),
        ))
    return entries


_STORE_SORT_FIELDS = {
    "gross": "gross", "sales": "sales", "qty": "qty", "rate": "rate",
    "aron-rate": "aron_rate", "pana-rate": "pana_rate",
    "rep": "sales_rep", "store": "store",
}


def sort_store_entries(entries: list, sort_key: str = "gross-desc") -> list:
    """並べ替えたリストを返す（未知のキーは粗利の降順）"""
    name, _, direction = sort_key.rpartition("-")
    attr = _STORE_SORT_FIELDS.get(name)
    if attr is None or direction not in ("asc", "desc"):
        attr, direction = "gross", "desc"
    return sorted(entries, key=lambda e: getattr(e, attr), reverse=direction == "desc")


# ============================================
# 商品別
# ============================================

@dataclass(frozen=True)
class ProductBucket:
    jan: str
    name: str
    maker: Maker
    list_price: float
    effective_cost: float
    shipping_cost: float
    sales: float = 0.0
    cost: float = 0.0
    shipping: float = 0.0
    gross: float = 0.0
    qty: float = 0.0
    price_sum: float = 0.0
    price_count: int = 0

    @property
    def avg_price(self) -> float:
        return self.price_sum / self.price_count if self.price_count > 0 else 0.0

    @property
    def rate_vs_list(self) -> float:
        return _ratio(self.avg_price, self.list_price)

    @property
    def profit_rate(self) -> float:
        return _ratio(self.gross, self.sales)


def build_products(records: Iterable[ReconciledRecord]) -> dict:
    firsts = {}
    accs = {}
    prices = {}
    for rec in records:
        if rec.jan not in firsts:
            firsts[rec.jan] = rec
            accs[rec.jan] = _Acc()
            prices[rec.jan] = [0.0, 0]
        accs[rec.jan].add_record(rec)
        if rec.unit_price > 0:
            prices[rec.jan][0] += rec.unit_price
            prices[rec.jan][1] += 1

    out = {}
    for jan, first in firsts.items():
        a = accs[jan]
        out[jan] = ProductBucket(
            jan=jan, name=first.name, maker=first.maker,
            list_price=first.list_price, effective_cost=first.effective_cost,
            shipping_cost=first.shipping_cost,
            sales=a.sales, cost=a.cost, shipping=a.shipping, gross=a.gross, qty=a.qty,
            price_sum=prices[jan][0], price_count=prices[jan][1],
        )
    return out


_PRODUCT_SORTS = {
    "profit-desc": (lambda b: b.gross, True),
    "profit-asc": (lambda b: b.gross, False),
    "sales-desc": (lambda b: b.sales, True),
    "qty-desc": (lambda b: b.qty, True),
}


def filter_products(buckets: Iterable[ProductBucket], maker: Optional[Maker] = None,
                    search: str = "", sort_key: str = "profit-desc") -> list:
    search = (search or "").strip().lower()
    entries = [
        b for b in buckets
        if (maker is None or b.maker is maker)
        and (not search or search in b.jan.lower() or search in b.name.lower())
    ]
    key, reverse = _PRODUCT_SORTS.get(sort_key, _PRODUCT_SORTS["profit-desc"])
    return sorted(entries, key=key, reverse=reverse)


# ============================================
# 分析結果
# ============================================

@dataclass(frozen=True)
class AnalysisResult:
    records: tuple
    stats: MatchStats
    monthly: dict           # (month, Maker) -> MonthlyBucket
    store_agg: dict         # (store, Maker) -> StoreMakerBucket
    store_slices: dict      # StoreSliceKey -> StoreSlice
    products: dict          # jan -> ProductBucket
    months: tuple
    month_sales_totals: dict
    total_sales: float
    total_cost: float
    total_shipping: float
    total_gross: float
    total_qty: float
    total_rebate: float
    total_warehouse: float
    total_warehouse_out: float
    aron_sales: float
    pana_sales: float
    rebate_by_maker: dict
    minus_by_maker: dict
    settings: Settings

    @property
    def month_count(self) -> int:
        return len(self.months)

    @property
    def total_minus(self) -> float:
        return self.total_warehouse + self.total_warehouse_out

    @property
    def real_profit(self) -> float:
        return self.total_gross + self.total_rebate - self.total_minus

    def monthly_entries(self, maker: Optional[Maker] = None) -> list:
        return [b for b in self.monthly.values() if maker is None or b.maker is maker]

    def summary(self) -> str:
        return (f"分析完了: 売上 ¥{self.total_sales:,.0f} / 商品粗利 ¥{self.total_gross:,.0f} / "
                f"実利益 ¥{self.real_profit:,.0f} / マイナス要件 ¥{self.total_minus:,.0f}")


def run_analysis(sales: Iterable, shipping: Iterable, products: Iterable,
                 settings: Settings) -> AnalysisResult:
    """突合から集計までを1回で実行し、新しい AnalysisResult を返す"""
    rec = reconcile(sales, shipping, products, settings)
    records = rec.records

    totals = _Acc()
    aron_sales = pana_sales = 0.0
    for r in records:
        totals.add_record(r)
        if r.maker is Maker.ARON:
            aron_sales += r.sales_amount
        elif r.maker is Maker.PANA:
            pana_sales += r.sales_amount

    months = tuple(sorted({r.month for r in records}))
    monthly = build_monthly(records, settings)

    result = AnalysisResult(
        records=records,
        stats=rec.stats,
        monthly=monthly.buckets,
        store_agg=build_store_agg(records),
        store_slices=build_store_slices(records),
        products=build_products(records),
        months=months,
        month_sales_totals=monthly.month_sales_totals,
        total_sales=totals.sales,
        total_cost=totals.cost,
        total_shipping=totals.shipping,
        total_gross=totals.gross,
        total_qty=totals.qty,
        total_rebate=monthly.total_rebate,
        total_warehouse=settings.warehouse_fee * len(months),
        total_warehouse_out=totals.qty * settings.warehouse_out_fee,
        aron_sales=aron_sales,
        pana_sales=pana_sales,
        rebate_by_maker=monthly.rebate_by_maker,
        minus_by_maker=monthly.minus_by_maker,
        settings=settings,
    )
    logger.info(result.summary())
    return result
