"""Tools module for common resources / shared code and "utilities" in the delayalloc package."""
import os
from pathlib import Path
from typing import Collection, Union

import numpy as np
import pandas as pd

from delayalloc.components.component import (
    ConfigurationError,
    FileFormatError,
    RunCancelled,
)

SPATIAL_EXTENSIONS = (".shp", ".gpkg", ".geojson", ".json", ".gml", ".fgb")


class CancelToken:
    """Cancellation signal for the long running loops of a run.

    The token is set by the caller (e.g. a signal handler or UI callback) and
    checked by the components with raise_if_cancelled at the start of each
    loop iteration.

    Example::
        token = CancelToken()
        for project in projects:
            token.raise_if_cancelled(f"project {project}")
    """

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        """Request cancellation of the run."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        """True if cancel has been called."""
        return self._cancelled

    def raise_if_cancelled(self, where: str = ""):
        """Raise RunCancelled if cancel has been called.

        Args:
            where (str): optional description of the loop position, used in the
                error message
        """
        if self._cancelled:
            msg = "Run cancelled by user"
            if where:
                msg = f"{msg} at {where}"
            raise RunCancelled(msg)


def read_table(path: Union[str, Path]) -> pd.DataFrame:
    """Read a link table from a .csv or a spatial file.

    Spatial files (shapefile, geopackage, geojson and others readable by
    geopandas) are returned as GeoDataFrames, all others as DataFrames.

    Args:
        path: path to .csv or spatial file

    Raises:
        FileNotFoundError: path does not exist
        FileFormatError: unsupported file extension
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"input file not found: {path}")
    ext = os.path.splitext(str(path))[1].lower()
    if ext == ".csv":
        return pd.read_csv(path)
    if ext in SPATIAL_EXTENSIONS:
        import geopandas as gpd

        return gpd.read_file(path)
    raise FileFormatError(path, f"expected .csv or one of {SPATIAL_EXTENSIONS}")


def require_columns(df: pd.DataFrame, columns: Collection[str], table_name: str):
    """Raise ConfigurationError naming any of columns not found in df.

    Args:
        df: table to check
        columns: required column names
        table_name: name used in the error message
    """
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ConfigurationError(
            f"field(s) {missing} not found in {table_name}, available fields are\
            {list(df.columns)}"
        )


def normalize_ids(series: pd.Series) -> pd.Series:
    """Return ID values as strings with nulls preserved.

    Numeric IDs read with nulls are floats (1.0); these are written as "1" so
    that IDs from different tables join consistently.
    """
    if pd.api.types.is_numeric_dtype(series):
        values = series.astype("Float64")
        if (values.dropna() % 1 == 0).all():
            values = values.astype("Int64")
        return values.astype("string").astype(object).where(series.notna(), None)
    return series.astype(object).where(series.notna(), None).map(
        lambda x: x if x is None else str(x).strip()
    )


def matches_value(series: pd.Series, value: Union[int, float, str]) -> pd.Series:
    """Boolean mask of series equal to value, comparing numbers as numbers."""
    if pd.api.types.is_numeric_dtype(series):
        try:
            return series == float(value)
        except ValueError:
            return pd.Series(False, index=series.index)
    return series.astype(str).str.strip() == str(value).strip()


def safe_divide(numerator, denominator):
    """Element-wise numerator / denominator with 0 where the denominator is 0."""
    numerator = np.asarray(numerator, dtype=float)
    denominator = np.asarray(denominator, dtype=float)
    result = np.zeros(np.broadcast(numerator, denominator).shape)
    np.divide(numerator, denominator, out=result, where=denominator != 0)
    return result


def snap_to_zero(values, tolerance: float):
    """Set values within +/- tolerance of zero to exactly 0 (also clears -0.0)."""
    values = np.asarray(values, dtype=float)
    return np.where(np.abs(values) <= tolerance, 0.0, values)
