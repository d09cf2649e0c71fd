"""
需要予測・シミュレーション

- 最小二乗法による回帰（トレンド・価格弾力性）
- 月別季節指数
- 販売店×メーカー単位の複合予測
- 掛け率・リベート率を変えた場合の実利益（what-if）と価格感応度の掃引
"""

import math
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional

import numpy as np

from .aggregate import AnalysisResult, build_monthly
from .config import PRICE_SWEEP_STEPS, UNKNOWN_STORE
from .models import REBATE_MAKERS, Maker, MakerRebate, ReconciledRecord
from .normalize import month_index

ELASTICITY_MIN = -5.0
ELASTICITY_MAX = 1.0
SEASONAL_MIN = 0.7
SEASONAL_MAX = 1.3
SEASONAL_MIN_MONTHS = 6
ELASTICITY_MIN_POINTS = 3
TREND_FULL_CONFIDENCE_POINTS = 12


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ============================================
# 回帰
# ============================================

@dataclass(frozen=True)
class LinearFit:
    slope: float = 0.0
    intercept: float = 0.0
    r2: float = 0.0
    n: int = 0

    def predict(self, x: float) -> float:
        return self.slope * x + self.intercept


def fit(points: Iterable) -> LinearFit:
    """(x, y) の列に対する最小二乗直線。2点未満は傾き0"""
    pts = [(float(x), float(y)) for x, y in points]
    n = len(pts)
    if n == 0:
        return LinearFit()
    xs = np.array([p[0] for p in pts])
    ys = np.array([p[1] for p in pts])
    y_mean = float(ys.mean())
    if n < 2:
        return LinearFit(slope=0.0, intercept=y_mean, r2=0.0, n=n)

    dx = xs - xs.mean()
    dy = ys - y_mean
    sxx = float((dx * dx).sum())
    if sxx <= 1e-12:
        return LinearFit(slope=0.0, intercept=y_mean, r2=0.0, n=n)

    slope = float((dx * dy).sum()) / sxx
    intercept = y_mean - slope * float(xs.mean())

    ss_tot = float((dy * dy).sum())
    if ss_tot <= 1e-12:
        r2 = 0.0
    else:
        residual = ys - (slope * xs + intercept)
        r2 = _clamp(1.0 - float((residual * residual).sum()) / ss_tot, 0.0, 1.0)
    return LinearFit(slope=slope, intercept=intercept, r2=r2, n=n)


# ============================================
# 月次系列
# ============================================

@dataclass(frozen=True)
class MonthPoint:
    month: str
    index: int          # 年×12＋月-1
    qty: float
    sales: float
    cost: float
    shipping: float
    unit_price: float   # 数量加重の平均単価
    list_price: float   # 数量加重の平均定価

    @property
    def calendar_month(self) -> int:
        return self.index % 12


def build_monthly_series(records: Iterable[ReconciledRecord]) -> list:
    """月別に集計して時系列順に並べる（月不明の行は除く）"""
    sums = {}
    for rec in records:
        idx = month_index(rec.month)
        if idx is None:
            continue
        s = sums.setdefault(idx, {"month": rec.month, "qty": 0.0, "sales": 0.0, "cost": 0.0,
                                  "shipping": 0.0, "price_qty": 0.0, "list_qty": 0.0})
        s["qty"] += rec.qty
        s["sales"] += rec.sales_amount
        s["cost"] += rec.total_cost
        s["shipping"] += rec.total_shipping
        s["price_qty"] += rec.unit_price * rec.qty
        s["list_qty"] += rec.list_price * rec.qty

    series = []
    for idx in sorted(sums):
        s = sums[idx]
        qty = s["qty"]
        series.append(MonthPoint(
            month=s["month"], index=idx, qty=qty,
            sales=s["sales"], cost=s["cost"], shipping=s["shipping"],
            unit_price=s["price_qty"] / qty if qty > 0 else 0.0,
            list_price=s["list_qty"] / qty if qty > 0 else 0.0,
        ))
    return series


# ============================================
# トレンド・弾力性・季節性
# ============================================

@dataclass(frozen=True)
class Trend:
    rate: float = 0.0        # 月次成長率（傾き÷平均月間数量）
    slope: float = 0.0
    r2: float = 0.0
    confidence: float = 0.0
    points: int = 0


def estimate_trend(series: list) -> Trend:
    if not series:
        return Trend()
    line = fit((p.index, p.qty) for p in series)
    avg = sum(p.qty for p in series) / len(series)
    rate = line.slope / avg if avg > 0 else 0.0
    confidence = line.r2 * min(1.0, len(series) / TREND_FULL_CONFIDENCE_POINTS)
    return Trend(rate=rate, slope=line.slope, r2=line.r2, confidence=confidence,
                 points=len(series))


@dataclass(frozen=True)
class Elasticity:
    value: float
    source: str          # "regression" | "manual"
    r2: float = 0.0
    points: int = 0


def estimate_elasticity(series: list, manual: float) -> Elasticity:
    """ln(数量) を ln(単価) に回帰した傾き。有効点が3未満なら手入力値を使う"""
    pts = [(math.log(p.unit_price), math.log(p.qty))
           for p in series if p.qty > 0 and p.unit_price > 0]
    if len(pts) < ELASTICITY_MIN_POINTS:
        return Elasticity(value=manual, source="manual", points=len(pts))
    line = fit(pts)
    return Elasticity(value=_clamp(line.slope, ELASTICITY_MIN, ELASTICITY_MAX),
                      source="regression", r2=line.r2, points=len(pts))


def estimate_seasonality(series: list, horizon: int) -> float:
    """
    月別の平均比率から、予測先の月と直近月の比を求める（±30%で頭打ち）。
    6か月未満の履歴では 1.0。
    """
    if len(series) < SEASONAL_MIN_MONTHS:
        return 1.0
    avg = sum(p.qty for p in series) / len(series)
    if avg <= 0:
        return 1.0

    by_month = {}
    for p in series:
        by_month.setdefault(p.calendar_month, []).append(p.qty / avg)
    profile = {m: sum(v) / len(v) for m, v in by_month.items()}

    current = series[-1].calendar_month
    target = (series[-1].index + max(0, int(horizon))) % 12
    if current not in profile or target not in profile or profile[current] <= 0:
        return 1.0
    return _clamp(profile[target] / profile[current], SEASONAL_MIN, SEASONAL_MAX)


# ============================================
# 複合予測
# ============================================

@dataclass(frozen=True)
class ForecastParams:
    horizon: int = 3                    # 予測月数
    price_change: float = 0.0           # 単価変動率（0.05 = +5%）
    manual_elasticity: float = -1.0
    manual_qty_change: float = 0.0      # 数量の手動補正率
    manual_qty_increase: float = 0.0    # 月あたりの数量上乗せ
    lookback_months: int = 3
    use_trend: bool = True
    use_seasonality: bool = True


@dataclass(frozen=True)
class Forecast:
    params: ForecastParams
    months_used: tuple = ()
    base_monthly_qty: float = 0.0
    before_qty: float = 0.0
    forecast_qty: float = 0.0
    avg_price: float = 0.0
    new_price: float = 0.0
    avg_cost: float = 0.0
    avg_shipping: float = 0.0
    trend: Trend = field(default_factory=Trend)
    elasticity: Optional[Elasticity] = None
    seasonal_factor: float = 1.0

    @property
    def before_sales(self) -> float:
        return self.before_qty * self.avg_price

    @property
    def after_sales(self) -> float:
        return self.forecast_qty * self.new_price

    @property
    def before_gross(self) -> float:
        return self.before_qty * (self.avg_price - self.avg_cost - self.avg_shipping)

    @property
    def after_gross(self) -> float:
        return self.forecast_qty * (self.new_price - self.avg_cost - self.avg_shipping)


def _in_slice(rec: ReconciledRecord, store: Optional[str], maker: Optional[Maker]) -> bool:
    if store is not None and (rec.store or UNKNOWN_STORE) != store:
        return False
    return maker is None or rec.maker is maker


def forecast_slice(records: Iterable[ReconciledRecord], params: ForecastParams = ForecastParams(),
                   store: Optional[str] = None, maker: Optional[Maker] = None) -> Forecast:
    """販売店×メーカーの数量・売上・粗利を予測する"""
    scoped = [r for r in records if _in_slice(r, store, maker)]
    series = build_monthly_series(scoped)
    if not series:
        return Forecast(params=params,
                        elasticity=Elasticity(value=params.manual_elasticity, source="manual"))

    horizon = max(0, int(params.horizon))
    window = series[-max(1, int(params.lookback_months)):]
    window_months = {p.month for p in window}
    base_qty = sum(p.qty for p in window) / len(window)

    qty_sum = price_sum = cost_sum = ship_sum = 0.0
    for r in scoped:
        if r.month in window_months:
            qty_sum += r.qty
            price_sum += r.unit_price * r.qty
            cost_sum += r.effective_cost * r.qty
            ship_sum += r.shipping_cost * r.qty
    avg_price = price_sum / qty_sum if qty_sum > 0 else 0.0
    avg_cost = cost_sum / qty_sum if qty_sum > 0 else 0.0
    avg_ship = ship_sum / qty_sum if qty_sum > 0 else 0.0

    trend = estimate_trend(series) if params.use_trend else Trend(points=len(series))
    elasticity = estimate_elasticity(series, params.manual_elasticity)
    seasonal = estimate_seasonality(series, horizon) if params.use_seasonality else 1.0

    forecast_qty = (
        base_qty * horizon
        * max(0.0, 1 + elasticity.value * params.price_change)
        * max(0.0, 1 + trend.rate * horizon)
        * max(0.0, 1 + params.manual_qty_change)
        * seasonal
        + params.manual_qty_increase * horizon
    )

    return Forecast(
        params=params,
        months_used=tuple(p.month for p in window),
        base_monthly_qty=base_qty,
        before_qty=base_qty * horizon,
        forecast_qty=forecast_qty,
        avg_price=avg_price,
        new_price=avg_price * (1 + params.price_change),
        avg_cost=avg_cost,
        avg_shipping=avg_ship,
        trend=trend,
        elasticity=elasticity,
        seasonal_factor=seasonal,
    )


# ============================================
# 販売店シミュレーション
# ============================================

@dataclass(frozen=True)
class SimTotals:
    sales: float = 0.0
    gross: float = 0.0
    qty: float = 0.0
    aron_rate: float = 0.0
    pana_rate: float = 0.0

    @property
    def profit_rate(self) -> float:
        return self.gross / self.sales if self.sales > 0 else 0.0


@dataclass(frozen=True)
class StoreSimulation:
    store: str
    before: SimTotals
    after: SimTotals

    def diff(self) -> dict:
        b, a = self.before, self.after
        return {
            "sales": a.sales - b.sales,
            "gross": a.gross - b.gross,
            "qty": a.qty - b.qty,
            "profit_rate": a.profit_rate - b.profit_rate,
            "aron_rate": a.aron_rate - b.aron_rate,
            "pana_rate": a.pana_rate - b.pana_rate,
        }


class _SimAcc:
    def __init__(self):
        self.sales = self.gross = self.qty = 0.0
        self.rates = {Maker.ARON: [0.0, 0.0], Maker.PANA: [0.0, 0.0]}

    def add(self, rec: ReconciledRecord, qty: float, unit_price: float):
        sales = qty * unit_price
        self.sales += sales
        self.gross += sales - qty * rec.effective_cost - qty * rec.shipping_cost
        self.qty += qty
        if rec.list_price > 0 and qty > 0 and rec.maker in self.rates:
            self.rates[rec.maker][0] += unit_price * qty
            self.rates[rec.maker][1] += rec.list_price * qty

    def freeze(self) -> SimTotals:
        def rate(m):
            num, den = self.rates[m]
            return num / den if den > 0 else 0.0
        return SimTotals(sales=self.sales, gross=self.gross, qty=self.qty,
                         aron_rate=rate(Maker.ARON), pana_rate=rate(Maker.PANA))


def simulate_store(records: Iterable[ReconciledRecord], store: str, maker: Optional[Maker] = None,
                   rate_change: float = 0.0, added_qty: float = 0.0) -> StoreSimulation:
    """
    販売店の掛け率変更・数量上乗せの効果を試算する。
    上乗せ数量は対象行に数量比で配分（数量0なら均等配分）。
    """
    store_records = [r for r in records if (r.store or UNKNOWN_STORE) == store]
    targets = [r for r in store_records if maker is None or r.maker is maker]
    target_qty = sum(r.qty for r in targets)
    added_qty = max(0.0, added_qty)

    before, after = _SimAcc(), _SimAcc()
    for rec in store_records:
        before.add(rec, rec.qty, rec.unit_price)

        apply = maker is None or rec.maker is maker
        extra = 0.0
        if apply and added_qty > 0:
            if target_qty > 0:
                extra = added_qty * (rec.qty / target_qty)
            elif targets:
                extra = added_qty / len(targets)
        price = rec.unit_price * (1 + rate_change) if apply else rec.unit_price
        after.add(rec, rec.qty + extra, price)

    return StoreSimulation(store=store, before=before.freeze(), after=after.freeze())


@dataclass(frozen=True)
class MarkupRates:
    aron: float = 0.0
    pana: float = 0.0
    all: float = 0.0


def current_markup_rates(records: Iterable[ReconciledRecord]) -> MarkupRates:
    """単価÷定価の単純平均（定価・単価とも>0の行）"""
    sums = {"aron": [0.0, 0], "pana": [0.0, 0], "all": [0.0, 0]}
    for rec in records:
        if rec.list_price > 0 and rec.unit_price > 0:
            rt = rec.unit_price / rec.list_price
            keys = ["all"] + ([rec.maker.value] if rec.maker in REBATE_MAKERS else [])
            for k in keys:
                sums[k][0] += rt
                sums[k][1] += 1
    return MarkupRates(**{k: (s / c if c else 0.0) for k, (s, c) in sums.items()})


# ============================================
# 全体 what-if
# ============================================

@dataclass(frozen=True)
class WhatIfParams:
    maker: Optional[Maker] = None        # 単価変更の対象（Noneは全メーカー）
    price_change: float = 0.0
    rebate_rate_delta: dict = field(default_factory=dict)   # Maker -> 率の増減
    fixed_rebate_delta: dict = field(default_factory=dict)  # Maker -> 月あたり固定額の増減


@dataclass(frozen=True)
class WhatIf:
    params: WhatIfParams
    gross_before: float
    gross_after: float
    rebate_before: float
    rebate_after: float
    real_profit_before: float
    real_profit_after: float

    @property
    def gross_diff(self) -> float:
        return self.gross_after - self.gross_before

    @property
    def real_profit_diff(self) -> float:
        return self.real_profit_after - self.real_profit_before


def _adjusted_settings(result: AnalysisResult, params: WhatIfParams):
    s = result.settings
    monthly = {m: dict(makers) for m, makers in s.monthly_rebates.items()}
    for maker in REBATE_MAKERS:
        delta = params.fixed_rebate_delta.get(maker, 0.0)
        if not delta:
            continue
        for month in result.months:
            base = s.monthly_rebate(month, maker)
            monthly.setdefault(month, {})[maker] = MakerRebate(achieve=base.achieve + delta, car=base.car)
    return replace(
        s,
        rebate_aron=s.rebate_aron + params.rebate_rate_delta.get(Maker.ARON, 0.0),
        rebate_pana=s.rebate_pana + params.rebate_rate_delta.get(Maker.PANA, 0.0),
        monthly_rebates=monthly,
    )


def simulate_what_if(result: AnalysisResult, params: WhatIfParams) -> WhatIf:
    """単価・リベート条件を変えた場合の粗利と実利益を再計算する"""
    factor = 1 + params.price_change

    def price_factor(rec: ReconciledRecord) -> float:
        return factor if params.maker is None or rec.maker is params.maker else 1.0

    gross_after = 0.0
    for rec in result.records:
        gross_after += rec.unit_price * price_factor(rec) * rec.qty - rec.total_cost - rec.total_shipping

    settings = _adjusted_settings(result, params)
    monthly = build_monthly(result.records, settings, price_factor)
    real_after = gross_after + monthly.total_rebate - result.total_minus

    return WhatIf(
        params=params,
        gross_before=result.total_gross,
        gross_after=gross_after,
        rebate_before=result.total_rebate,
        rebate_after=monthly.total_rebate,
        real_profit_before=result.real_profit,
        real_profit_after=real_after,
    )


@dataclass(frozen=True)
class ResponsePoint:
    pct: int
    gross: float
    real_profit: float


def scan_price_response(result: AnalysisResult, maker: Optional[Maker] = None,
                        steps: Iterable[int] = PRICE_SWEEP_STEPS,
                        base: Optional[WhatIfParams] = None) -> list:
    """単価変動率を掃引した粗利・実利益の応答曲線"""
    base = base or WhatIfParams()
    points = []
    for pct in steps:
        w = simulate_what_if(result, replace(base, maker=maker, price_change=pct / 100))
        points.append(ResponsePoint(pct=pct, gross=w.gross_after, real_profit=w.real_profit_after))
    return points
