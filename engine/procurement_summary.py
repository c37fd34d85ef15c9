"""Per-world purchase lists built from shopping plan recommendations."""

from __future__ import annotations

from typing import Sequence

import pandas as pd

from engine.market_models import DetailedShoppingPlan

ROUTE_COLUMNS = ["world", "item_id", "item", "quantity", "unit_price", "total_cost", "is_split", "is_vendor"]

AGG_COLS = {
    "item_id": "nunique",
    "quantity": "sum",
    "total_cost": "sum",
}


def purchase_rows(plans: Sequence[DetailedShoppingPlan]) -> pd.DataFrame:
    """One row per (world, item) purchase the plans recommend."""
    rows = []
    for plan in plans:
        if plan.error and plan.recommended_world is None:
            continue
        if plan.recommended_split:
            for part in plan.recommended_split:
                rows.append({
                    "world": part.world_name,
                    "item_id": plan.item_id,
                    "item": plan.name,
                    "quantity": part.quantity_to_buy,
                    "unit_price": part.price_per_unit,
                    "total_cost": part.total_cost,
                    "is_split": True,
                    "is_vendor": False,
                })
        elif plan.recommended_world is not None:
            world = plan.recommended_world
            rows.append({
                "world": world.world_name,
                "item_id": plan.item_id,
                "item": plan.name,
                "quantity": world.total_quantity_purchased,
                "unit_price": world.average_price_per_unit,
                "total_cost": world.total_cost,
                "is_split": False,
                "is_vendor": world.is_vendor,
            })
    return pd.DataFrame(rows, columns=ROUTE_COLUMNS)


def summarize_by_world(plans: Sequence[DetailedShoppingPlan]) -> pd.DataFrame:
    """Collapse purchases to one row per world, most expensive stop first."""
    df = purchase_rows(plans)
    if df.empty:
        return pd.DataFrame(columns=["world", "items", "quantity", "total_cost"])
    grp = (
        df.groupby("world", as_index=False)
        .agg(AGG_COLS)
        .rename(columns={"item_id": "items"})
    )
    return grp.sort_values(["total_cost", "world"], ascending=[False, True]).reset_index(drop=True)


def unplanned_items(plans: Sequence[DetailedShoppingPlan]) -> list[dict]:
    """Materials with no purchase recommendation and why."""
    out = []
    for plan in plans:
        if plan.recommended_world is None and not plan.recommended_split:
            out.append({
                "item_id": plan.item_id,
                "item": plan.name,
                "quantity": plan.quantity_needed,
                "reason": plan.error or f"short by {plan.stock_shortfall}",
            })
    return out
