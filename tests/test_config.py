import pytest

from erosion.config import Parameters, PartitionConfig, PartitionMethod, RunConfig


def test_scaled_divides_iterations_only() -> None:
    params = Parameters(num_iterations=1001, erosion_radius=4)
    scaled = params.scaled(16)

    assert scaled.num_iterations == 62
    assert scaled.erosion_radius == 4
    assert params.num_iterations == 1001
    with pytest.raises(ValueError):
        params.scaled(0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"erosion_radius": 0},
        {"inertia": 1.5},
        {"evaporate_speed": -0.1},
        {"num_iterations": -1},
        {"min_sediment_capacity": -0.5},
    ],
)
def test_invalid_parameters(kwargs) -> None:
    with pytest.raises(ValueError):
        Parameters(**kwargs)


def test_metadata_renders_strings() -> None:
    meta = Parameters().to_metadata()

    assert meta["erosion_radius"] == "3"
    assert meta["inertia"] == "0.05"
    assert len(meta) == 12


def test_partition_config_validation() -> None:
    with pytest.raises(ValueError):
        PartitionConfig(subdivisions=-1)
    with pytest.raises(ValueError):
        PartitionConfig(executor="fiber")
    with pytest.raises(ValueError):
        PartitionConfig(grid_size=0)


def test_method_labels() -> None:
    assert PartitionMethod.SUBDIVISION_BLUR_BOUNDARY.label == "SubdivisionBlurBoundary"
    assert PartitionMethod("grid_overlap_blend") is PartitionMethod.GRID_OVERLAP_BLEND


def test_run_config_to_dict_uses_method_value() -> None:
    payload = RunConfig(seed=3).to_dict()

    assert payload["seed"] == 3
    assert payload["partition"]["method"] == "subdivision"
    assert payload["params"]["num_iterations"] == 1
