"""
Named scenarios: validation, an in-memory store with a flat-file backing, and share links.

Live calculations always use plain percentages for growth and churn. Storage records
(the JSON file written by `ScenarioStore.save`) keep them as integers scaled by
`RATE_STORAGE_SCALE`, so 8.5% is stored as 85. The scale is applied only in
`scenario_to_record` / `scenario_from_record`. Rates must therefore be multiples
of 0.1; finer values are rejected by validation.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional
from urllib.parse import parse_qs, quote, urlsplit

from streamlit.logger import get_logger

from breakeven_calculator.costs import CostLineItem
from breakeven_calculator.model import compute_metrics, compute_projection
from breakeven_calculator.types import Metrics, ParameterSet, ProjectionPeriod

logger = get_logger(__name__)

RATE_STORAGE_SCALE = 10
DEMO_USER_ID = 1

PARAM_FIELDS = [
    "price_per_learner",
    "variable_cost_per_learner",
    "initial_learner_count",
    "monthly_growth_rate",
    "monthly_churn_rate",
]
SCALED_RATE_FIELDS = ["monthly_growth_rate", "monthly_churn_rate"]
REQUIRED_FIELDS = ["name", "fixed_costs", *PARAM_FIELDS]


class ScenarioValidationError(ValueError):
    def __init__(self, details: list[str]):
        super().__init__("Invalid data: " + "; ".join(details))
        self.details = details


@dataclass
class Scenario:
    name: str
    fixed_costs: list[CostLineItem] = field(default_factory=list)
    variable_costs: list[CostLineItem] = field(default_factory=list)
    params: ParameterSet = ParameterSet()
    id: Optional[int] = None
    user_id: Optional[int] = None

    @property
    def total_fixed_costs(self) -> float:
        return float(sum(item.amount for item in self.fixed_costs))

    @property
    def effective_params(self) -> ParameterSet:
        # Variable cost items, when present, define the per-learner variable cost
        if not self.variable_costs:
            return self.params
        return self.params.with_variable_costs(sum(item.amount for item in self.variable_costs))

    def metrics(self) -> Metrics:
        return compute_metrics(self.total_fixed_costs, self.effective_params)

    def projection(self) -> list[ProjectionPeriod]:
        return compute_projection(self.effective_params)


def _is_number(value: Any) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints too large for a float
        return False


def _fits_storage_scale(value: float) -> bool:
    scaled = value * RATE_STORAGE_SCALE
    return math.isfinite(scaled) and round(scaled) / RATE_STORAGE_SCALE == value


def _validate_cost_items(key: str, raw: Any, details: list[str]) -> list[CostLineItem]:
    if not isinstance(raw, list):
        details.append(f"{key}: expected a list")
        return []
    items: list[CostLineItem] = []
    for i, entry in enumerate(raw):
        if isinstance(entry, CostLineItem):
            entry = {"id": entry.id, "description": entry.description, "amount": entry.amount}
        if not isinstance(entry, dict):
            details.append(f"{key}[{i}]: expected an object")
            continue
        item_id = entry.get("id")
        description = entry.get("description")
        amount = entry.get("amount")
        ok = True
        if not isinstance(item_id, str):
            details.append(f"{key}[{i}].id: expected a string")
            ok = False
        if not isinstance(description, str) or len(description) < 1:
            details.append(f"{key}[{i}].description: Description is required")
            ok = False
        if not _is_number(amount):
            details.append(f"{key}[{i}].amount: expected a number")
            ok = False
        elif amount < 0:
            details.append(f"{key}[{i}].amount: Amount must be positive")
            ok = False
        if ok:
            items.append(CostLineItem(id=item_id, description=description, amount=float(amount)))
    return items


def validate_scenario_payload(payload: Any, partial: bool = False) -> dict[str, Any]:
    """Check and normalize a scenario payload (plain-percentage rates).

    Returns a dict holding only the keys present, with cost items as `CostLineItem`
    and parameters as floats. With `partial=True` missing keys are allowed (updates).
    """
    if not isinstance(payload, dict):
        raise ScenarioValidationError(["payload: expected an object"])

    details: list[str] = []
    out: dict[str, Any] = {}

    if not partial:
        details.extend(f"{k}: Required" for k in REQUIRED_FIELDS if k not in payload)

    if "name" in payload:
        name = payload["name"]
        if not isinstance(name, str) or not name.strip():
            details.append("name: Name is required")
        else:
            out["name"] = name.strip()

    for key in ("fixed_costs", "variable_costs"):
        if key in payload:
            out[key] = _validate_cost_items(key, payload[key], details)

    for key in PARAM_FIELDS:
        if key not in payload:
            continue
        value = payload[key]
        if not _is_number(value):
            details.append(f"{key}: expected a number")
        elif key == "initial_learner_count" and float(value) != int(value):
            details.append(f"{key}: expected an integer")
        elif key in SCALED_RATE_FIELDS and not _fits_storage_scale(value):
            details.append(f"{key}: must be a multiple of 0.1")
        else:
            out[key] = float(value)

    if details:
        raise ScenarioValidationError(details)
    return out


def _scenario_from_validated(data: dict[str, Any], scenario_id: Optional[int], user_id: Optional[int]) -> Scenario:
    params = ParameterSet(**{k: data[k] for k in PARAM_FIELDS if k in data})
    return Scenario(
        name=data["name"],
        fixed_costs=data.get("fixed_costs", []),
        variable_costs=data.get("variable_costs", []),
        params=params,
        id=scenario_id,
        user_id=user_id,
    )


def scenario_to_payload(scenario: Scenario) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": scenario.name,
        "fixed_costs": [{"id": c.id, "description": c.description, "amount": c.amount} for c in scenario.fixed_costs],
        "variable_costs": [
            {"id": c.id, "description": c.description, "amount": c.amount} for c in scenario.variable_costs
        ],
    }
    for key in PARAM_FIELDS:
        payload[key] = getattr(scenario.params, key)
    return payload


def scenario_to_record(scenario: Scenario) -> dict[str, Any]:
    record = {"id": scenario.id, "user_id": scenario.user_id, **scenario_to_payload(scenario)}
    for key in SCALED_RATE_FIELDS:
        record[key] = int(round(record[key] * RATE_STORAGE_SCALE))
    return record


def scenario_from_record(record: dict[str, Any]) -> Scenario:
    payload = {k: v for k, v in record.items() if k not in ("id", "user_id")}
    for key in SCALED_RATE_FIELDS:
        if _is_number(payload.get(key)):
            payload[key] = payload[key] / RATE_STORAGE_SCALE
    data = validate_scenario_payload(payload)
    return _scenario_from_validated(data, record.get("id"), record.get("user_id"))


class ScenarioStore:
    """In-memory scenario table with sequential ids, optionally backed by a JSON file."""

    def __init__(self) -> None:
        self._scenarios: dict[int, Scenario] = {}
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._scenarios)

    def get(self, scenario_id: int) -> Optional[Scenario]:
        return self._scenarios.get(scenario_id)

    def list_for_user(self, user_id: Optional[int] = DEMO_USER_ID) -> list[Scenario]:
        return [s for s in self._scenarios.values() if s.user_id == user_id]

    def _insert(self, scenario: Scenario) -> Scenario:
        scenario.id = self._next_id
        self._next_id += 1
        self._scenarios[scenario.id] = scenario
        return scenario

    def create(self, payload: dict[str, Any], user_id: Optional[int] = DEMO_USER_ID) -> Scenario:
        data = validate_scenario_payload(payload)
        scenario = self._insert(_scenario_from_validated(data, None, user_id))
        logger.info(f"Created scenario {scenario.id} ({scenario.name!r})")
        return scenario

    def update(self, scenario_id: int, payload: dict[str, Any]) -> Optional[Scenario]:
        scenario = self._scenarios.get(scenario_id)
        if scenario is None:
            return None
        data = validate_scenario_payload(payload, partial=True)
        param_updates = {k: data[k] for k in PARAM_FIELDS if k in data}
        updated = replace(
            scenario,
            name=data.get("name", scenario.name),
            fixed_costs=data.get("fixed_costs", scenario.fixed_costs),
            variable_costs=data.get("variable_costs", scenario.variable_costs),
            params=replace(scenario.params, **param_updates),
        )
        self._scenarios[scenario_id] = updated
        logger.info(f"Updated scenario {scenario_id}: {sorted(data)}")
        return updated

    def delete(self, scenario_id: int) -> bool:
        deleted = self._scenarios.pop(scenario_id, None) is not None
        logger.info(f"Delete scenario {scenario_id}: {'ok' if deleted else 'not found'}")
        return deleted

    def duplicate(self, scenario_id: int) -> Optional[Scenario]:
        source = self._scenarios.get(scenario_id)
        if source is None:
            return None
        data = validate_scenario_payload({**scenario_to_payload(source), "name": f"{source.name} (Copy)"})
        copy = self._insert(_scenario_from_validated(data, None, source.user_id))
        logger.info(f"Duplicated scenario {scenario_id} as {copy.id}")
        return copy

    def to_records(self) -> list[dict[str, Any]]:
        return [scenario_to_record(s) for s in self._scenarios.values()]

    @classmethod
    def from_records(cls, records: list[dict[str, Any]]) -> "ScenarioStore":
        store = cls()
        for record in records:
            scenario = scenario_from_record(record)
            if scenario.id is None or scenario.id in store._scenarios:
                store._insert(scenario)
            else:
                store._scenarios[scenario.id] = scenario
                store._next_id = max(store._next_id, scenario.id + 1)
        return store

    def save(self, path: str | Path) -> None:
        Path(path).write_text(json.dumps({"scenarios": self.to_records()}, indent=2))
        logger.info(f"Saved {len(self)} scenarios to {path}")

    @classmethod
    def load(cls, path: str | Path) -> "ScenarioStore":
        p = Path(path)
        if not p.exists():
            return cls()
        raw = json.loads(p.read_text())
        records = raw.get("scenarios", []) if isinstance(raw, dict) else raw
        store = cls.from_records(records)
        logger.info(f"Loaded {len(store)} scenarios from {path}")
        return store


def encode_share_link(scenario: Scenario, base_url: str) -> str:
    return f"{base_url}?scenario={quote(json.dumps(scenario_to_payload(scenario)))}"


def share_param_from_link(link: str) -> str:
    """Decoded `scenario` query parameter of a share link, as a browser would hand it back."""
    values = parse_qs(urlsplit(link).query).get("scenario")
    if not values:
        raise ScenarioValidationError(["scenario: missing from link"])
    return values[0]


def decode_share_param(value: str) -> Scenario:
    """Rebuild a scenario from an already URL-decoded `scenario` query parameter."""
    try:
        payload = json.loads(value)
    except json.JSONDecodeError as e:
        raise ScenarioValidationError([f"scenario: not valid JSON ({e.msg})"]) from e
    data = validate_scenario_payload(payload)
    return _scenario_from_validated(data, None, None)
