"""Merge of primary and secondary project benefits, with optional costs."""

from __future__ import annotations

import dataclasses
import math
import os
from typing import TYPE_CHECKING, List, Optional

import numpy as np
import pandas as pd

from delayalloc.components.component import (
    Component,
    ConfigurationError,
    RunContext,
    VerificationError,
)
from delayalloc.logger import LogStartEnd
from delayalloc.tools import normalize_ids, read_table, require_columns

if TYPE_CHECKING:
    from delayalloc.controller import RunController

RESULT_COLUMNS = [
    "proj_id",
    "primary_benefits",
    "secondary_benefits",
    "total_benefits",
    "vmt_diff",
    "cma_diff",
    "utilization",
]
COST_COLUMNS = ["cost", "bc_ratio"]


def read_project_table(path: str, columns: List[str], table_name: str) -> pd.DataFrame:
    """Read a project table (costs or answers) with proj_id and the given columns."""
    table = read_table(path)
    require_columns(table, ["proj_id"] + columns, table_name)
    table = table[["proj_id"] + columns].copy()
    table["proj_id"] = normalize_ids(table["proj_id"])
    return table


def merge_results(
    primary: pd.DataFrame,
    secondary: pd.DataFrame,
    cost: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """Project benefits table.

    Primary results are left joined with secondary results (projects without
    secondary benefits get 0) and total_benefits = primary + secondary. If cost
    is given it is left joined and bc_ratio = total_benefits / cost (NaN where
    the cost is missing or zero).

    Args:
        primary: output of aggregate_primary_benefits
        secondary: output of summarize_secondary
        cost: optional table of proj_id, cost
    """
    results = primary.merge(secondary, on="proj_id", how="left")
    results["secondary_benefits"] = results["secondary_benefits"].fillna(0.0)
    results["total_benefits"] = results["primary_benefits"] + results["secondary_benefits"]
    columns = list(RESULT_COLUMNS)
    if cost is not None:
        if cost["proj_id"].duplicated().any():
            raise ConfigurationError("duplicate proj_id values in project cost table")
        results = results.merge(cost[["proj_id", "cost"]], on="proj_id", how="left")
        _cost = results["cost"].astype(float)
        results["bc_ratio"] = results["total_benefits"] / _cost.where(_cost != 0, np.nan)
        columns += COST_COLUMNS
    return results[columns].sort_values("proj_id").reset_index(drop=True)


def compare_answers(
    results: pd.DataFrame, answers: pd.DataFrame, rel_tol: float = 1e-6
) -> List[str]:
    """Compare total_benefits with expected answers, return a list of mismatches."""
    compare = answers.merge(
        results[["proj_id", "total_benefits"]],
        on="proj_id",
        how="outer",
        suffixes=("_expected", "_result"),
    )
    mismatches = []
    for row in compare.itertuples(index=False):
        expected, result = row.total_benefits_expected, row.total_benefits_result
        if pd.isna(expected) or pd.isna(result):
            mismatches.append(f"{row.proj_id}: expected {expected}, result {result}")
        elif not math.isclose(expected, result, rel_tol=rel_tol, abs_tol=1e-9):
            mismatches.append(f"{row.proj_id}: expected {expected}, result {result}")
    return mismatches


class ResultMerge(Component):
    """Merge the project benefits, join costs and write the project benefits table.

    Governed by ScenarioConfig (cost_file, answers_file, verify) and OutputConfig
    (benefits_file).
    """

    def __init__(self, controller: RunController):
        super().__init__(controller)

    @property
    def output_path(self) -> str:
        return self.get_output_path(self.config.output.benefits_file)

    def validate_inputs(self):
        """Validate cost and answers files exist if specified."""
        for name in ("cost_file", "answers_file"):
            path = self.config.scenario[name]
            if path is not None and not os.path.exists(self.get_abs_path(path)):
                raise FileNotFoundError(
                    f"scenario.{name} not found: {self.get_abs_path(path)}"
                )

    @LogStartEnd("Merge results", level="STATUS")
    def run(self, context: RunContext) -> RunContext:
        cost = None
        if self.config.scenario.cost_file is not None:
            cost = read_project_table(
                self.get_abs_path(self.config.scenario.cost_file), ["cost"], "cost table"
            )
        results = merge_results(
            context.require("primary"), context.require("secondary"), cost
        )
        os.makedirs(os.path.dirname(self.output_path), exist_ok=True)
        results.to_csv(self.output_path, index=False)
        self.logger.log(f"Wrote {len(results)} projects to {self.output_path}")
        self.controller.get_component("secondary_allocation").write_distance_matrix()
        self.logger.log(
            f"total benefits {results['total_benefits'].sum():.4f}", "STATUS"
        )
        return dataclasses.replace(context, results=results)

    def verify(self, context: RunContext):
        """Compare total_benefits with the scenario answers_file."""
        answers = read_project_table(
            self.get_abs_path(self.config.scenario.answers_file),
            ["total_benefits"],
            "answers table",
        )
        mismatches = compare_answers(
            context.require("results"), answers, self.config.scenario.verify_rel_tol
        )
        if mismatches:
            for mismatch in mismatches:
                self.logger.log(mismatch, "ERROR")
            raise VerificationError(
                f"total_benefits do not match {self.config.scenario.answers_file}:"
                f" {mismatches}"
            )
        self.logger.log(f"Verified total_benefits for {len(answers)} projects", "STATUS")
