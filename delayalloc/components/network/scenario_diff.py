"""Join the no-build and build networks and calculate the link differences."""

from __future__ import annotations

import dataclasses
import os
from typing import TYPE_CHECKING, Optional, Tuple

import numpy as np
import pandas as pd

from delayalloc.components.component import (
    Component,
    ConfigurationError,
    FileFormatError,
    RunContext,
)
from delayalloc.config import FieldsConfig, ScenarioDiffConfig
from delayalloc.logger import LogStartEnd
from delayalloc.tools import matches_value, normalize_ids, read_table, require_columns

if TYPE_CHECKING:
    import geopandas as gpd

    from delayalloc.controller import RunController

# metric short name -> (AB field config attribute, BA field config attribute, column suffix)
METRICS = {
    "vol": ("ab_vol", "ba_vol", "volume"),
    "cap": ("ab_cap", "ba_cap", "capacity"),
    "delay": ("ab_delay", "ba_delay", "delay"),
}
PCT_METRICS = ("vol", "cap")


def scenario_columns(fields: FieldsConfig, prefix: str = "") -> dict:
    """Mapping of input scenario field name to standard link column name."""
    columns = {}
    for ab_attr, ba_attr, suffix in METRICS.values():
        columns[fields[ab_attr]] = f"{prefix}ab_{suffix}"
        columns[fields[ba_attr]] = f"{prefix}ba_{suffix}"
    return columns


def percent_difference(
    diff: pd.Series, no_build: pd.Series, epsilon: float = 1e-4, cap: float = 999.0
) -> pd.Series:
    """Percent change from no-build, clipped to +/- cap.

    The no-build value is offset by epsilon so that new volume or capacity on a
    link with a no-build value of zero is a large, but finite, percent change.
    """
    return (100.0 * diff / (no_build + epsilon)).clip(lower=-cap, upper=cap)


def diff_scenarios(
    build: pd.DataFrame,
    no_build: pd.DataFrame,
    fields: FieldsConfig,
    settings: Optional[ScenarioDiffConfig] = None,
) -> pd.DataFrame:
    """Difference the build and no-build link volume, capacity and delay.

    Centroid connectors (fields.fclass_field equal to fields.cc_class) are
    removed from the build network. No-build values are joined on link ID,
    links not found in the no-build network are new links with no-build values
    of zero. Null values in either network are treated as zero.

    Args:
        build: build network link table
        no_build: no-build network link table
        fields: field name mapping
        settings: percent difference epsilon and cap, defaults to ScenarioDiffConfig()

    Returns:
        DataFrame of link records, one row per non-connector build link, with
        columns id, length, dir, a_node, b_node, project_id, the build values
        (ab_volume, ...), no-build values (nb_ab_volume, ...), nb_tot_cap and the
        differences {ab,ba,tot}_{vol,cap,delay}_diff and {ab,ba}_{vol,cap}_pct_diff.
    """
    settings = settings or ScenarioDiffConfig()
    build_required = [
        fields.id_field,
        fields.length_field,
        fields.a_node_field,
        fields.b_node_field,
        fields.fclass_field,
        fields.projid_field,
    ] + list(fields.scenario_fields)
    require_columns(build, build_required, "build network")
    require_columns(
        no_build, [fields.id_field] + list(fields.scenario_fields), "no-build network"
    )
    for name, table in (("build network", build), ("no-build network", no_build)):
        if table[fields.id_field].duplicated().any():
            dups = table.loc[table[fields.id_field].duplicated(), fields.id_field]
            raise FileFormatError(name, f"duplicate link ids {dups.tolist()[:10]}")

    build = build[~matches_value(build[fields.fclass_field], fields.cc_class)]
    if fields.dir_field in build.columns:
        _dir = build[fields.dir_field].fillna(0).to_numpy()
    else:
        _dir = np.zeros(len(build))

    links = pd.DataFrame(
        {
            "id": build[fields.id_field].to_numpy(),
            "length": build[fields.length_field].fillna(0).to_numpy(dtype=float),
            "dir": _dir,
            "a_node": build[fields.a_node_field].to_numpy(),
            "b_node": build[fields.b_node_field].to_numpy(),
            "project_id": normalize_ids(build[fields.projid_field]).to_numpy(),
        }
    )
    build_values = (
        build[list(fields.scenario_fields)]
        .rename(columns=scenario_columns(fields))
        .apply(pd.to_numeric, errors="coerce")
        .fillna(0)
        .reset_index(drop=True)
    )
    links = pd.concat([links, build_values], axis=1)

    nb_values = no_build[[fields.id_field] + list(fields.scenario_fields)].rename(
        columns={fields.id_field: "id", **scenario_columns(fields, prefix="nb_")}
    )
    nb_columns = list(scenario_columns(fields, prefix="nb_").values())
    nb_values[nb_columns] = nb_values[nb_columns].apply(pd.to_numeric, errors="coerce")
    links = links.merge(nb_values, on="id", how="left")
    links[nb_columns] = links[nb_columns].fillna(0)

    for metric, (_, _, suffix) in METRICS.items():
        for direction in ("ab", "ba"):
            links[f"{direction}_{metric}_diff"] = (
                links[f"{direction}_{suffix}"] - links[f"nb_{direction}_{suffix}"]
            )
        links[f"tot_{metric}_diff"] = (
            links[f"ab_{metric}_diff"] + links[f"ba_{metric}_diff"]
        )
    for metric in PCT_METRICS:
        suffix = METRICS[metric][2]
        for direction in ("ab", "ba"):
            links[f"{direction}_{metric}_pct_diff"] = percent_difference(
                links[f"{direction}_{metric}_diff"],
                links[f"nb_{direction}_{suffix}"],
                settings.pct_epsilon,
                settings.pct_cap,
            )
    links["nb_tot_cap"] = links["nb_ab_capacity"] + links["nb_ba_capacity"]
    return links


def link_geometry(build: pd.DataFrame, fields: FieldsConfig) -> Optional["gpd.GeoDataFrame"]:
    """The id and geometry of the non-connector build links, None if build has no geometry."""
    if not hasattr(build, "geometry") or "geometry" not in build.columns:
        return None
    build = build[~matches_value(build[fields.fclass_field], fields.cc_class)]
    geometry = build[[fields.id_field, "geometry"]].rename(columns={fields.id_field: "id"})
    return geometry.reset_index(drop=True)


class ScenarioDiff(Component):
    """Read the build and no-build networks and calculate link differences.

    Governed by ScenarioConfig (build_network, no_build_network), FieldsConfig
    and ScenarioDiffConfig.
    """

    def __init__(self, controller: RunController):
        """Constructor for ScenarioDiff.

        Args:
            controller (RunController): Reference to run controller object.
        """
        super().__init__(controller)
        self.fields = self.config.fields

    @property
    def build_path(self) -> str:
        """Absolute path to the build network."""
        return self.get_abs_path(self.config.scenario.build_network)

    @property
    def no_build_path(self) -> str:
        """Absolute path to the no-build network."""
        return self.get_abs_path(self.config.scenario.no_build_network)

    def validate_inputs(self):
        """Validate the network paths are given and exist."""
        for name, path in (
            ("scenario.build_network", self.config.scenario.build_network),
            ("scenario.no_build_network", self.config.scenario.no_build_network),
        ):
            if path is None or str(path) == "":
                raise ConfigurationError(f"{name} is required")
            if not os.path.exists(self.get_abs_path(path)):
                raise FileNotFoundError(f"{name} not found: {self.get_abs_path(path)}")

    @LogStartEnd("Scenario differences", level="STATUS")
    def run(self, context: RunContext) -> RunContext:
        """Difference the networks and add links and geometry to the context."""
        build, no_build = self._read_networks()
        links = diff_scenarios(
            build, no_build, self.fields, self.config.scenario_diff
        )
        geometry = link_geometry(build, self.fields)
        self._log_summary(build, links)
        return dataclasses.replace(context, links=links, geometry=geometry)

    def _read_networks(self) -> Tuple[pd.DataFrame, pd.DataFrame]:
        self.logger.log(f"Reading build network {self.build_path}", "DETAIL")
        build = read_table(self.build_path)
        self.logger.log(f"Reading no-build network {self.no_build_path}", "DETAIL")
        no_build = read_table(self.no_build_path)
        return build, no_build

    def _log_summary(self, build: pd.DataFrame, links: pd.DataFrame):
        num_cc = len(build) - len(links)
        num_new = int((links["nb_tot_cap"] == 0).sum())
        self.logger.log(
            f"{len(links)} build links, {num_cc} centroid connectors removed,"
            f" {num_new} links without no-build capacity"
        )
        self.logger.log(
            f"total delay change {links['tot_delay_diff'].sum():.4f}", "DETAIL"
        )
