import breakeven_calculator as bc


def test_package_exports():
    # Ensure the package exposes expected symbols
    assert hasattr(bc, "compute_metrics")
    assert hasattr(bc, "compute_projection")
    assert hasattr(bc, "ParameterSet")
    assert hasattr(bc, "CostTable")
