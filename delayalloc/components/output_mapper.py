"""Module for writing the link level detail for mapping."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Optional

import pandas as pd

from delayalloc.components.component import Component, RunContext
from delayalloc.logger import LogStartEnd

if TYPE_CHECKING:
    import geopandas as gpd

    from delayalloc.controller import RunController


def link_detail(
    links: pd.DataFrame, geometry: Optional["gpd.GeoDataFrame"] = None
) -> pd.DataFrame:
    """Link records joined to the build network geometry, if available."""
    if geometry is None:
        return links.copy()
    return geometry.merge(links, on="id", how="inner")


class OutputMapper(Component):
    """Write link level detail and, optionally, the secondary allocation detail.

    Links are written with the build network geometry to OutputConfig.link_file
    if the build network is a spatial file, otherwise as a table to
    OutputConfig.link_table_file.
    """

    def __init__(self, controller: RunController):
        super().__init__(controller)
        self.output = self.config.output

    def validate_inputs(self):
        """No inputs besides the run context."""

    @LogStartEnd("Write link detail", level="STATUS")
    def run(self, context: RunContext) -> RunContext:
        os.makedirs(self.get_abs_path(self.config.scenario.output_dir), exist_ok=True)
        detail = link_detail(context.require("links"), context.geometry)
        if context.geometry is not None:
            path = self.get_output_path(self.output.link_file)
            if os.path.exists(path):
                os.remove(path)
            detail.to_file(path)
        else:
            path = self.get_output_path(self.output.link_table_file)
            detail.to_csv(path, index=False)
        self.logger.log(f"Wrote {len(detail)} links to {path}")

        if self.output.write_allocation_detail and context.allocation is not None:
            path = self.get_output_path(self.output.allocation_file)
            context.allocation.to_csv(path, index=False)
            self.logger.log(f"Wrote {len(context.allocation)} allocation rows to {path}")
        return context
