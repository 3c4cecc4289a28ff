"Utilities for testing."

from typing import Collection, Hashable

import pandas as pd


def assert_csv_equal(ref_csv: str, run_csv: str, **kwargs):
    """Compare two csv files, return results of pd.testing.assert_frame_equal().

    Args:
        ref_csv (str): Reference CSV location
        run_csv (str): Model run CSV location
        kwargs: passed to pd.testing.assert_frame_equal, e.g. rtol

    Returns:
        Results of pd.testing.assert_frame_equal()
    """
    ref_df = pd.read_csv(ref_csv)
    run_df = pd.read_csv(run_csv)
    return pd.testing.assert_frame_equal(ref_df, run_df, **kwargs)


def link_table(
    links: Collection[tuple], columns=("id", "a_node", "b_node", "length")
) -> pd.DataFrame:
    """Small link table from tuples, e.g. [(1, 1, 2, 1.0), (2, 2, 3, 1.0)]."""
    return pd.DataFrame(list(links), columns=list(columns))


def row(df: pd.DataFrame, link_id: Hashable, column: str = "id") -> pd.Series:
    """The single row of df with column equal to link_id."""
    rows = df[df[column] == link_id]
    assert len(rows) == 1, f"expected one row with {column}={link_id}, found {len(rows)}"
    return rows.iloc[0]
