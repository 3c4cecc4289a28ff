"""Shared fixtures for tests."""
import os
import shutil
from pathlib import Path

import pandas as pd
import pytest


@pytest.fixture(scope="session")
def root_dir():
    """Root delayalloc directory."""
    d = os.path.dirname(os.path.abspath(__file__))
    for i in range(3):
        if "examples" in os.listdir(d):
            return Path(d)
        d = os.path.dirname(d)


@pytest.fixture(scope="session")
def examples_dir(root_dir):
    """Directory for example files."""
    return root_dir / "examples"


@pytest.fixture(scope="session")
def bin_dir(root_dir):
    """Directory for bin files."""
    return root_dir / "bin"


@pytest.fixture(scope="session")
def config_files(examples_dir):
    """The example scenario and model config files."""
    return [
        examples_dir / "scenario_config.toml",
        examples_dir / "model_config.toml",
    ]


@pytest.fixture()
def corridor_dir(examples_dir, tmp_path):
    """Copy of the Corridor example in a temporary run directory."""
    run_dir = tmp_path / "Corridor"
    shutil.copytree(examples_dir / "Corridor", run_dir)
    return run_dir


@pytest.fixture(scope="session")
def fields():
    """FieldsConfig matching the Corridor example networks."""
    from delayalloc.config import FieldsConfig

    return FieldsConfig(
        ab_vol="AB_Flow",
        ba_vol="BA_Flow",
        ab_cap="AB_Capacity",
        ba_cap="BA_Capacity",
        ab_delay="AB_Delay",
        ba_delay="BA_Delay",
        fclass_field="FClass",
        cc_class="CC",
        projid_field="ProjID",
    )


@pytest.fixture()
def build_network(examples_dir):
    """Corridor build network link table."""
    return pd.read_csv(examples_dir / "Corridor" / "inputs" / "build_links.csv")


@pytest.fixture()
def no_build_network(examples_dir):
    """Corridor no-build network link table."""
    return pd.read_csv(examples_dir / "Corridor" / "inputs" / "no_build_links.csv")


@pytest.fixture()
def diffed_links(build_network, no_build_network, fields):
    """Corridor link records after the scenario differences."""
    from delayalloc.components.network.scenario_diff import diff_scenarios

    return diff_scenarios(build_network, no_build_network, fields)


@pytest.fixture()
def classified_links(diffed_links):
    """Corridor link records after the benefit classification."""
    from delayalloc.components.benefits.classifier import classify_links

    return classify_links(diffed_links)


@pytest.fixture()
def stub_controller(tmp_path):
    """Minimal stand-in controller for Logger and Component tests.

    Provides config.logging (log files written to tmp_path), run_dir and
    component_name.
    """
    from delayalloc.config import LoggingConfig
    from delayalloc.logger import Logger
    from delayalloc.tools import CancelToken

    class Config:
        logging = LoggingConfig(
            display_level="STATUS",
            run_file_path="delayalloc_run.log",
            run_file_level="STATUS",
            log_file_path="delayalloc_debug.log",
            log_file_level="DEBUG",
            log_on_error_file_path="delayalloc_error.log",
            notify_slack=False,
        )

    class Controller:
        def __init__(self, run_dir):
            self.config = Config()
            self.run_dir = run_dir
            self.component_name = None
            self.cancel_token = CancelToken()
            self.logger = Logger(self)

    return Controller(tmp_path)
