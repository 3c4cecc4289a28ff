"""Testing module for Corridor example delay allocation runs."""

import os

import pandas as pd
import pytest
import toml

from tools import assert_csv_equal

P1_TOTAL_BENEFITS = 18.972727272727273


def _write_config(path, config_path, update):
    """Write a copy of config_path with the nested dict update applied."""
    with open(config_path, "r") as fin:
        config = toml.load(fin)
    for section, values in update.items():
        config.setdefault(section, {}).update(values)
    with open(path, "w") as fout:
        toml.dump(config, fout)
    return path


def test_corridor_run(config_files, corridor_dir):
    """Corridor example runs end to end and matches the expected answers."""
    from delayalloc.controller import RunController

    controller = RunController(config_files, run_dir=corridor_dir)
    context = controller.run()

    assert [name for name, _ in controller.completed_components] == list(
        controller.config.run.components
    )
    results = context.results
    # P2 has no capacity change and is not in the results
    assert results["proj_id"].tolist() == ["P1"]
    project = results.iloc[0]
    assert project["primary_benefits"] == pytest.approx(8.0 + 36.0 / 11.0 + 2.7, rel=1e-6)
    assert project["secondary_benefits"] == pytest.approx(5.0, rel=1e-6)
    assert project["total_benefits"] == pytest.approx(P1_TOTAL_BENEFITS, rel=1e-6)
    assert project["cost"] == 100
    assert project["bc_ratio"] == pytest.approx(P1_TOTAL_BENEFITS / 100, rel=1e-6)

    output_dir = corridor_dir / "outputs"
    benefits = pd.read_csv(output_dir / "project_benefits.csv")
    assert list(benefits.columns) == [
        "proj_id",
        "primary_benefits",
        "secondary_benefits",
        "total_benefits",
        "vmt_diff",
        "cma_diff",
        "utilization",
        "cost",
        "bc_ratio",
    ]
    links = pd.read_csv(output_dir / "link_benefits.csv")
    assert links["id"].tolist() == [1, 2, 3, 4, 5]
    assert links["category"].tolist() == [
        "Primary",
        "Both",
        "Secondary",
        "Secondary",
        "Secondary",
    ]
    allocation = pd.read_csv(output_dir / "secondary_allocation.csv")
    assert len(allocation) == 6
    assert allocation["final"].sum() == pytest.approx(5.0, rel=1e-6)

    assert os.path.exists(corridor_dir / controller.config.logging.run_file_path)


def test_run_deterministic(config_files, corridor_dir, tmp_path):
    """Re-running on identical inputs gives an identical benefits table."""
    import shutil

    from delayalloc.controller import RunController

    RunController(config_files, run_dir=corridor_dir).run()
    first = tmp_path / "first_project_benefits.csv"
    shutil.copy(corridor_dir / "outputs" / "project_benefits.csv", first)
    RunController(config_files, run_dir=corridor_dir).run()
    second = corridor_dir / "outputs" / "project_benefits.csv"

    assert_csv_equal(first, second)
    with open(first, "rb") as f_first, open(second, "rb") as f_second:
        assert f_first.read() == f_second.read()


def test_run_components(config_files, corridor_dir):
    """A subset of components can be run."""
    from delayalloc.controller import RunController

    controller = RunController(
        config_files,
        run_dir=corridor_dir,
        run_components=["scenario_diff", "benefit_classification", "primary_aggregation"],
    )
    context = controller.run()
    assert context.results is None
    assert context.primary["proj_id"].tolist() == ["P1"]
    assert not os.path.exists(corridor_dir / "outputs" / "project_benefits.csv")

    with pytest.raises(ValueError):
        RunController(config_files, run_dir=corridor_dir, run_components=["highway"])


def test_verification_failure(config_files, corridor_dir):
    """A mismatch with the answers file fails the run and writes the error log."""
    from delayalloc.components.component import VerificationError
    from delayalloc.controller import RunController

    (corridor_dir / "inputs" / "answers.csv").write_text("proj_id,total_benefits\nP1,20.0\n")
    controller = RunController(config_files, run_dir=corridor_dir)
    with pytest.raises(VerificationError):
        controller.run()
    assert os.path.exists(
        corridor_dir / controller.config.logging.log_on_error_file_path
    )


def test_cancel(config_files, corridor_dir):
    """A cancelled run stops before any results are written."""
    from delayalloc.components.component import RunCancelled
    from delayalloc.controller import RunController

    controller = RunController(config_files, run_dir=corridor_dir)
    controller.cancel()
    with pytest.raises(RunCancelled):
        controller.run()
    assert controller.component_name == "secondary_allocation"
    assert not os.path.exists(corridor_dir / "outputs" / "project_benefits.csv")


def test_validate_input_fail(config_files, corridor_dir, examples_dir, tmp_path):
    """Test that validate_inputs fails when required inputs are missing."""
    from delayalloc.controller import RunController

    bad_scenario_config = _write_config(
        tmp_path / "bad_scenario_config.toml",
        examples_dir / "scenario_config.toml",
        {"scenario": {"cost_file": "inputs/foo.csv"}},
    )
    with pytest.raises(FileNotFoundError):
        RunController(
            [bad_scenario_config, examples_dir / "model_config.toml"],
            run_dir=corridor_dir,
        )


def test_distance_matrix_file(examples_dir, corridor_dir, tmp_path):
    """The distance matrix is written to the OMX file, and read on the next run."""
    from delayalloc.controller import RunController

    model_config = _write_config(
        tmp_path / "model_config.toml",
        examples_dir / "model_config.toml",
        {"allocation": {"distance_matrix_file": "cache/distance.omx"}},
    )
    config_files = [examples_dir / "scenario_config.toml", model_config]
    first = RunController(config_files, run_dir=corridor_dir).run()
    assert os.path.exists(corridor_dir / "cache" / "distance.omx")

    controller = RunController(config_files, run_dir=corridor_dir)
    second = controller.run()
    pd.testing.assert_frame_equal(first.results, second.results)


def test_cancel_distance_matrix_file(examples_dir, corridor_dir, tmp_path):
    """The distance matrix file is written with the results, not by a cancelled run."""
    from delayalloc.components.component import RunCancelled
    from delayalloc.controller import RunController

    model_config = _write_config(
        tmp_path / "model_config.toml",
        examples_dir / "model_config.toml",
        {"allocation": {"distance_matrix_file": "cache/distance.omx"}},
    )
    config_files = [examples_dir / "scenario_config.toml", model_config]
    cache_path = corridor_dir / "cache" / "distance.omx"

    controller = RunController(config_files, run_dir=corridor_dir)
    controller.cancel()
    with pytest.raises(RunCancelled):
        controller.run()
    assert not os.path.exists(cache_path)

    # result_merge is not run, so neither is the distance matrix written
    RunController(
        config_files,
        run_dir=corridor_dir,
        run_components=["scenario_diff", "benefit_classification", "secondary_allocation"],
    ).run()
    assert not os.path.exists(cache_path)

    RunController(config_files, run_dir=corridor_dir).run()
    assert os.path.exists(cache_path)


def test_log_files_closed(config_files, corridor_dir):
    """The log files are closed at the end of a run, whether it completes or fails."""
    from delayalloc.components.component import VerificationError
    from delayalloc.controller import RunController
    from delayalloc.logger import LogFile

    def open_log_files(controller):
        return [
            f
            for f in controller.logger._log_formatters
            if isinstance(f, LogFile) and f.log_file is not None
        ]

    controller = RunController(config_files, run_dir=corridor_dir)
    assert len(open_log_files(controller)) == 2
    controller.run()
    assert open_log_files(controller) == []

    (corridor_dir / "inputs" / "answers.csv").write_text("proj_id,total_benefits\nP1,20.0\n")
    controller = RunController(config_files, run_dir=corridor_dir)
    with pytest.raises(VerificationError):
        controller.run()
    assert open_log_files(controller) == []
    with open(corridor_dir / controller.config.logging.run_file_path, "r") as f:
        assert "VerificationError" in f.read()


def test_injected_distance_matrix(config_files, corridor_dir):
    """A precalculated distance matrix can be given to the secondary allocation."""
    from delayalloc.components.component import VerificationError
    from delayalloc.components.network.distance import DistanceMatrix
    from delayalloc.controller import RunController

    # all nodes far apart: no donor link has weight, no secondary benefits
    nodes = [1, 2, 3, 4, 5]
    matrix = [[0.0 if i == j else 100.0 for j in nodes] for i in nodes]
    controller = RunController(config_files, run_dir=corridor_dir)
    controller.get_component("secondary_allocation").distance_matrix = DistanceMatrix(
        nodes, matrix
    )
    # answers are for the network distances
    with pytest.raises(VerificationError):
        controller.run()
    assert controller.context.secondary["secondary_benefits"].tolist() == [0.0]


def test_geometry_buffer_query(examples_dir, corridor_dir, tmp_path):
    """Spatial build network with the geometry buffer query writes the link layer."""
    import geopandas as gpd
    from shapely.geometry import LineString

    from delayalloc.controller import RunController

    coords = {1: (0, 0), 2: (1, 0), 3: (2, 0), 4: (3, 0), 5: (3, 2), 10: (-1, 0)}
    build = pd.read_csv(corridor_dir / "inputs" / "build_links.csv")
    geometry = [LineString([coords[a], coords[b]]) for a, b in zip(build.From_ID, build.To_ID)]
    gpd.GeoDataFrame(build, geometry=geometry).to_file(
        corridor_dir / "inputs" / "build_links.gpkg"
    )

    scenario_config = _write_config(
        tmp_path / "scenario_config.toml",
        examples_dir / "scenario_config.toml",
        {"scenario": {"build_network": "inputs/build_links.gpkg", "verify": False}},
    )
    model_config = _write_config(
        tmp_path / "model_config.toml",
        examples_dir / "model_config.toml",
        {"allocation": {"buffer_query": "geometry"}},
    )
    context = RunController([scenario_config, model_config], run_dir=corridor_dir).run()

    assert context.geometry is not None
    assert context.results["proj_id"].tolist() == ["P1"]
    assert context.results["primary_benefits"][0] == pytest.approx(
        8.0 + 36.0 / 11.0 + 2.7, rel=1e-6
    )
    link_layer = gpd.read_file(corridor_dir / "outputs" / "link_benefits.gpkg")
    assert len(link_layer) == 5
    assert "category" in link_layer.columns


def test_geometry_query_requires_spatial_network(examples_dir, corridor_dir, tmp_path):
    from delayalloc.components.component import ConfigurationError
    from delayalloc.controller import RunController

    model_config = _write_config(
        tmp_path / "model_config.toml",
        examples_dir / "model_config.toml",
        {"allocation": {"buffer_query": "geometry"}},
    )
    with pytest.raises(ConfigurationError, match="spatial build network"):
        RunController(
            [examples_dir / "scenario_config.toml", model_config], run_dir=corridor_dir
        )
