from __future__ import annotations

import uuid
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Literal, Optional

import pandas as pd

CostKind = Literal["fixed", "variable"]
COST_COLUMNS = ["id", "description", "amount"]


def _new_item_id() -> str:
    return uuid.uuid4().hex


@dataclass
class CostLineItem:
    id: str
    description: str = ""
    amount: float = 0.0


@dataclass
class CostTable:
    """Owns one list of cost line items (fixed monthly costs or variable cost per learner)."""

    kind: CostKind
    items: list[CostLineItem] = field(default_factory=list)

    @property
    def total(self) -> float:
        return float(sum(item.amount for item in self.items))

    def get(self, item_id: str) -> Optional[CostLineItem]:
        return next((item for item in self.items if item.id == item_id), None)

    def add(self, description: str = "", amount: float = 0.0) -> CostLineItem:
        if amount < 0:
            raise ValueError("Amount must be positive")
        item_id = _new_item_id()
        while self.get(item_id) is not None:
            item_id = _new_item_id()
        item = CostLineItem(id=item_id, description=description, amount=float(amount))
        self.items.append(item)
        return item

    def remove(self, item_id: str) -> bool:
        # The last remaining row is kept so the table never renders empty
        if len(self.items) <= 1 or self.get(item_id) is None:
            return False
        self.items = [item for item in self.items if item.id != item_id]
        return True

    def update(self, item_id: str, description: Optional[str] = None, amount: Optional[float] = None) -> CostLineItem:
        item = self.get(item_id)
        if item is None:
            raise KeyError(item_id)
        if amount is not None:
            if amount < 0:
                raise ValueError("Amount must be positive")
            item.amount = float(amount)
        if description is not None:
            item.description = description
        return item

    def to_frame(self) -> pd.DataFrame:
        return cost_items_to_frame(self.items)

    @classmethod
    def from_frame(cls, kind: CostKind, df: pd.DataFrame) -> "CostTable":
        return cls(kind=kind, items=cost_items_from_frame(df))


def cost_items_to_frame(items: list[CostLineItem]) -> pd.DataFrame:
    return pd.DataFrame(
        [[item.id, item.description, item.amount] for item in items],
        columns=COST_COLUMNS,
    )


def clean_cost_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Normalize an edited cost table: numeric non-negative amounts, text descriptions, unique ids."""
    df = df.copy()
    for col in COST_COLUMNS:
        if col not in df.columns:
            df[col] = None
    df = df[COST_COLUMNS].copy()
    df["description"] = df["description"].fillna("").astype(str)
    df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0.0).clip(lower=0.0).astype(float)

    ids = df["id"].where(df["id"].notna(), "").astype(str).str.strip()
    missing = (ids == "") | ids.str.lower().isin(["nan", "none"]) | ids.duplicated()
    if missing.any():
        ids[missing] = [_new_item_id() for _ in range(int(missing.sum()))]
    df["id"] = ids
    return df.reset_index(drop=True)


def cost_items_from_frame(df: pd.DataFrame) -> list[CostLineItem]:
    cleaned = clean_cost_frame(df)
    return [
        CostLineItem(id=row.id, description=row.description, amount=float(row.amount))
        for row in cleaned.itertuples(index=False)
    ]


def read_cost_items(file_like, has_header: bool = True) -> list[CostLineItem]:
    """Parse a CSV/XLSX export of cost items.

    With a header row the columns `description` and `amount` are used when present,
    otherwise (and without a header) the first two columns.
    """
    with suppress(Exception):
        file_like.seek(0)

    if getattr(file_like, "name", "").lower().endswith((".xlsx", ".xls")):
        df = pd.read_excel(file_like, header=0 if has_header else None)
    else:
        df = pd.read_csv(file_like, header=0 if has_header else None)

    if df.shape[1] < 2:
        raise ValueError("Expected at least two columns: description and amount")

    columns = [str(c).strip().lower() for c in df.columns] if has_header else []
    if {"description", "amount"}.issubset(columns):
        df.columns = columns
        df = df[["description", "amount"]]
    else:
        df = df.iloc[:, :2].copy()
        df.columns = ["description", "amount"]

    df = df.dropna(how="all")
    return cost_items_from_frame(df.assign(id=None))
