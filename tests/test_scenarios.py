import json

import pytest

from breakeven_calculator.costs import CostLineItem
from breakeven_calculator.scenarios import (
    RATE_STORAGE_SCALE,
    ScenarioStore,
    ScenarioValidationError,
    decode_share_param,
    encode_share_link,
    scenario_from_record,
    scenario_to_record,
    share_param_from_link,
    validate_scenario_payload,
)


def _payload(**overrides) -> dict:
    payload = {
        "name": "Conservative Growth",
        "fixed_costs": [
            {"id": "1", "description": "Rent", "amount": 50000},
            {"id": "2", "description": "Salaries", "amount": 15500},
        ],
        "price_per_learner": 299,
        "variable_cost_per_learner": 45,
        "initial_learner_count": 150,
        "monthly_growth_rate": 8.5,
        "monthly_churn_rate": 5.2,
    }
    payload.update(overrides)
    return payload


def test_validate_scenario_payload_ok():
    data = validate_scenario_payload(_payload())
    assert data["name"] == "Conservative Growth"
    assert data["fixed_costs"][0] == CostLineItem("1", "Rent", 50000.0)
    assert data["monthly_growth_rate"] == 8.5


def test_validate_scenario_payload_collects_details():
    bad = _payload(
        name="  ",
        fixed_costs=[{"id": 1, "description": "", "amount": -3}],
        initial_learner_count=1.5,
        monthly_churn_rate=True,
    )
    del bad["price_per_learner"]
    with pytest.raises(ScenarioValidationError) as exc:
        validate_scenario_payload(bad)
    details = exc.value.details
    assert "price_per_learner: Required" in details
    assert "name: Name is required" in details
    assert "fixed_costs[0].id: expected a string" in details
    assert "fixed_costs[0].description: Description is required" in details
    assert "fixed_costs[0].amount: Amount must be positive" in details
    assert "initial_learner_count: expected an integer" in details
    assert "monthly_churn_rate: expected a number" in details
    assert isinstance(exc.value, ValueError)


def test_validate_partial_payload():
    assert validate_scenario_payload({"monthly_churn_rate": 3}, partial=True) == {"monthly_churn_rate": 3.0}
    with pytest.raises(ScenarioValidationError):
        validate_scenario_payload({"monthly_churn_rate": 3})
    with pytest.raises(ScenarioValidationError):
        validate_scenario_payload(["not", "a", "dict"])


def test_store_crud():
    store = ScenarioStore()
    s = store.create(_payload())
    assert s.id == 1 and s.user_id == 1
    assert store.get(1) is s
    assert store.list_for_user(1) == [s]
    assert store.list_for_user(2) == []

    m = s.metrics()
    assert m.break_even_learners == 258
    assert s.projection()[1].learners == 155

    updated = store.update(1, {"monthly_churn_rate": 3.0})
    assert updated.params.monthly_churn_rate == 3.0
    assert updated.params.monthly_growth_rate == 8.5
    assert updated.name == "Conservative Growth"
    assert store.update(99, {"name": "x"}) is None
    with pytest.raises(ScenarioValidationError):
        store.update(1, {"name": ""})

    assert store.delete(1)
    assert not store.delete(1)
    assert len(store) == 0


def test_store_duplicate():
    store = ScenarioStore()
    s = store.create(_payload(), user_id=7)
    copy = store.duplicate(s.id)
    assert copy.id == 2
    assert copy.name == "Conservative Growth (Copy)"
    assert copy.user_id == 7
    assert copy.params == s.params
    assert copy.fixed_costs == s.fixed_costs
    assert copy.fixed_costs is not s.fixed_costs
    assert store.duplicate(42) is None


def test_variable_cost_items_drive_effective_params():
    store = ScenarioStore()
    s = store.create(
        _payload(
            variable_cost_per_learner=0,
            variable_costs=[
                {"id": "v1", "description": "Hosting", "amount": 20},
                {"id": "v2", "description": "Content", "amount": 25},
            ],
        )
    )
    assert s.effective_params.variable_cost_per_learner == 45
    assert s.metrics().contribution_margin == 254


def test_storage_record_scales_rates():
    s = ScenarioStore().create(_payload())
    record = scenario_to_record(s)
    assert RATE_STORAGE_SCALE == 10
    assert record["monthly_growth_rate"] == 85
    assert record["monthly_churn_rate"] == 52
    assert record["id"] == 1

    back = scenario_from_record(record)
    assert back.params.monthly_growth_rate == 8.5
    assert back.params.monthly_churn_rate == 5.2
    assert back.id == 1 and back.user_id == 1


def test_store_save_and_load(tmp_path):
    path = tmp_path / "scenarios.json"
    store = ScenarioStore()
    store.create(_payload())
    store.create(_payload(name="Aggressive Expansion", monthly_growth_rate=15))
    store.delete(1)
    store.save(path)

    raw = json.loads(path.read_text())
    assert raw["scenarios"][0]["monthly_growth_rate"] == 150

    loaded = ScenarioStore.load(path)
    assert len(loaded) == 1
    assert loaded.get(2).params.monthly_growth_rate == 15
    assert loaded.create(_payload()).id == 3

    assert len(ScenarioStore.load(tmp_path / "missing.json")) == 0


def test_share_link_roundtrip():
    s = ScenarioStore().create(_payload())
    link = encode_share_link(s, "http://localhost:8501")
    assert link.startswith("http://localhost:8501?scenario=")
    shared = decode_share_param(share_param_from_link(link))
    assert shared.name == s.name
    assert shared.params == s.params
    assert shared.fixed_costs == s.fixed_costs
    assert shared.id is None

    # Streamlit hands over query params already decoded
    assert decode_share_param(json.dumps(_payload())).name == "Conservative Growth"

    with pytest.raises(ScenarioValidationError):
        decode_share_param("not-json")



def test_share_link_keeps_percent_signs_in_descriptions():
    s = ScenarioStore().create(
        _payload(fixed_costs=[{"id": "1", "description": "Ads 100%25 budget", "amount": 1200}])
    )
    link = encode_share_link(s, "http://localhost:8501")
    shared = decode_share_param(share_param_from_link(link))
    assert shared.fixed_costs[0].description == "Ads 100%25 budget"

    with pytest.raises(ScenarioValidationError):
        share_param_from_link("http://localhost:8501?other=1")


def test_validation_rejects_ints_beyond_float_range():
    with pytest.raises(ScenarioValidationError) as excinfo:
        validate_scenario_payload(_payload(price_per_learner=10**400))
    assert excinfo.value.details == ["price_per_learner: expected a number"]

    big_cost = [{"id": "1", "description": "Rent", "amount": 10**400}]
    with pytest.raises(ScenarioValidationError) as excinfo:
        validate_scenario_payload(_payload(fixed_costs=big_cost))
    assert excinfo.value.details == ["fixed_costs[0].amount: expected a number"]

    # json parses long digit strings into Python ints
    with pytest.raises(ScenarioValidationError):
        decode_share_param(json.dumps(_payload(initial_learner_count=10**400)))


def test_rates_finer_than_storage_scale_are_rejected():
    store = ScenarioStore()
    with pytest.raises(ScenarioValidationError) as excinfo:
        store.create(_payload(monthly_growth_rate=8.55))
    assert excinfo.value.details == ["monthly_growth_rate: must be a multiple of 0.1"]

    s = store.create(_payload())
    with pytest.raises(ScenarioValidationError):
        store.update(s.id, {"monthly_churn_rate": 5.25})
    assert store.get(s.id).params.monthly_churn_rate == 5.2

    with pytest.raises(ScenarioValidationError):
        validate_scenario_payload(_payload(monthly_growth_rate=1e308))


@pytest.mark.parametrize("growth, churn", [(8.5, 5.2), (0.3, 0.1), (20, 0), (2.7, 24.9)])
def test_storage_record_roundtrip_is_exact(growth, churn):
    s = ScenarioStore().create(_payload(monthly_growth_rate=growth, monthly_churn_rate=churn))
    back = scenario_from_record(scenario_to_record(s))
    assert back.params == s.params


# end
