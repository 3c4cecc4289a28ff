"""Aggregation of link primary benefits and metrics to projects."""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Optional

import pandas as pd

from delayalloc.components.component import Component, RunContext
from delayalloc.logger import LogStartEnd, Logger

if TYPE_CHECKING:
    from delayalloc.controller import RunController

PRIMARY_COLUMNS = ["proj_id", "primary_benefits", "vmt_diff", "cma_diff", "utilization"]


def aggregate_primary_benefits(
    links: pd.DataFrame, logger: Optional[Logger] = None
) -> pd.DataFrame:
    """Sum primary benefits, VMT and capacity-miles change by project.

    vmt_diff = sum(tot_vol_diff * length)
    cma_diff = sum(tot_cap_diff * length)
    primary_benefits = sum(ab_prim_ben + ba_prim_ben)
    utilization = vmt_diff / cma_diff

    Projects without a net increase in capacity-miles (cma_diff <= 0) are dropped.

    Args:
        links: classified link records
        logger: optional, dropped projects are logged at DETAIL level
    """
    project_links = links[links["project_id"].notna()]
    sums = pd.DataFrame(
        {
            "proj_id": project_links["project_id"],
            "primary_benefits": project_links["ab_prim_ben"] + project_links["ba_prim_ben"],
            "vmt_diff": project_links["tot_vol_diff"] * project_links["length"],
            "cma_diff": project_links["tot_cap_diff"] * project_links["length"],
        }
    )
    projects = sums.groupby("proj_id", as_index=False).sum()
    dropped = projects.loc[projects["cma_diff"] <= 0, "proj_id"]
    if logger is not None and len(dropped):
        logger.log(
            f"projects without capacity-miles increase dropped: {dropped.tolist()}",
            "DETAIL",
        )
    projects = projects[projects["cma_diff"] > 0].copy()
    projects["utilization"] = projects["vmt_diff"] / projects["cma_diff"]
    return projects[PRIMARY_COLUMNS].sort_values("proj_id").reset_index(drop=True)


class PrimaryAggregation(Component):
    """Aggregate primary benefits to projects."""

    def __init__(self, controller: RunController):
        super().__init__(controller)

    def validate_inputs(self):
        """No inputs besides the link records."""

    @LogStartEnd("Primary benefit aggregation", level="STATUS")
    def run(self, context: RunContext) -> RunContext:
        primary = aggregate_primary_benefits(context.require("links"), self.logger)
        self.logger.log(
            f"{len(primary)} projects, {primary['primary_benefits'].sum():.4f}"
            " primary benefits"
        )
        return dataclasses.replace(context, primary=primary)
