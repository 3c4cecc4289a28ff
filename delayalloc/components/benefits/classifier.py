"""Classification of link delay change as primary and / or secondary benefit.

A link's category is looked up from the signs of its total delay, capacity
and volume change:

    delay  capacity  volume  category
    -      +         +       Primary
    -      +         -       Both
    -      -         +       None
    -      -         -       Secondary
    +      +         +       Secondary
    +      +         -       None
    +      -         +       Both
    +      -         -       Primary

Sign combinations with a zero change have no category (null). Then the
overrides are applied in order, a later override replacing an earlier one:
links without no-build capacity are new links (Primary), and links without a
capacity change can only have secondary benefit (Secondary).

The delay decrease is split into primary and secondary benefit by the
direction shares of the category: all primary, all secondary, nothing, or
for Both, in proportion to the relative capacity and volume changes.
"""

from __future__ import annotations

import dataclasses
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Tuple

import numpy as np
import pandas as pd

from delayalloc.components.component import Component, RunContext
from delayalloc.config import ClassificationConfig
from delayalloc.logger import LogStartEnd
from delayalloc.tools import snap_to_zero

if TYPE_CHECKING:
    from delayalloc.controller import RunController


class Category(str, Enum):
    """Benefit category of a link."""

    PRIMARY = "Primary"
    SECONDARY = "Secondary"
    BOTH = "Both"
    NONE = "None"


# (sign of delay change, sign of capacity change, sign of volume change) -> category
CATEGORY_TABLE = {
    (-1, 1, 1): Category.PRIMARY,
    (-1, 1, -1): Category.BOTH,
    (-1, -1, 1): Category.NONE,
    (-1, -1, -1): Category.SECONDARY,
    (1, 1, 1): Category.SECONDARY,
    (1, 1, -1): Category.NONE,
    (1, -1, 1): Category.BOTH,
    (1, -1, -1): Category.PRIMARY,
}

# (description, test on link records, category), applied in order after the table lookup
OVERRIDES: Tuple[Tuple[str, Callable[[pd.DataFrame], pd.Series], Category], ...] = (
    ("new link", lambda links: links["nb_tot_cap"] == 0, Category.PRIMARY),
    ("no capacity change", lambda links: links["tot_cap_diff"] == 0, Category.SECONDARY),
)

# category -> (capacity share, volume share) of the delay benefit, Both is calculated
FIXED_SHARES = {
    Category.PRIMARY: (1.0, 0.0),
    Category.SECONDARY: (0.0, 1.0),
    Category.NONE: (0.0, 0.0),
    None: (0.0, 0.0),
}


def _sign(value: float) -> int:
    return int(np.sign(value))


def lookup_category(
    delay_diff: float, cap_diff: float, vol_diff: float
) -> Optional[Category]:
    """Category from the table by the signs of the changes, None if not in the table."""
    return CATEGORY_TABLE.get((_sign(delay_diff), _sign(cap_diff), _sign(vol_diff)))


def classify_link(
    delay_diff: float, cap_diff: float, vol_diff: float, nb_tot_cap: float
) -> Optional[Category]:
    """Category of a single link, with overrides.

    Args:
        delay_diff: total (AB + BA) delay change
        cap_diff: total capacity change
        vol_diff: total volume change
        nb_tot_cap: total no-build capacity
    """
    record = {"tot_cap_diff": cap_diff, "nb_tot_cap": nb_tot_cap}
    category = lookup_category(delay_diff, cap_diff, vol_diff)
    for _, test, override in OVERRIDES:
        if test(record):
            category = override
    return category


def direction_shares(
    category: Optional[Category], cap_pct_diff: float, vol_pct_diff: float
) -> Tuple[float, float]:
    """Capacity (primary) and volume (secondary) shares of one direction's benefit.

    For Both, cap_ratio = |cap_pct| / (|cap_pct| + |vol_pct|), 0 if both are 0,
    and vol_ratio = 1 - cap_ratio.
    """
    if category == Category.BOTH:
        total = abs(cap_pct_diff) + abs(vol_pct_diff)
        cap_ratio = abs(cap_pct_diff) / total if total else 0.0
        return cap_ratio, 1.0 - cap_ratio
    return FIXED_SHARES[category]


def categorize(links: pd.DataFrame) -> pd.Series:
    """Category value (str or None) for each link record."""
    categories = pd.Series(
        [
            lookup_category(d, c, v)
            for d, c, v in zip(
                links["tot_delay_diff"], links["tot_cap_diff"], links["tot_vol_diff"]
            )
        ],
        index=links.index,
        dtype=object,
    )
    for _, test, override in OVERRIDES:
        categories = categories.mask(test(links), override)
    return categories.map(lambda c: None if c is None else Category(c).value)


def classify_links(
    links: pd.DataFrame, settings: Optional[ClassificationConfig] = None
) -> pd.DataFrame:
    """Add category, direction shares and primary / secondary benefits to link records.

    Args:
        links: link records from diff_scenarios
        settings: zero_snap tolerance, defaults to ClassificationConfig()

    Returns:
        copy of links with columns category, {ab,ba}_cap_ratio, {ab,ba}_vol_ratio,
        {ab,ba}_prim_ben and {ab,ba}_sec_ben
    """
    settings = settings or ClassificationConfig()
    links = links.copy()
    links["category"] = categorize(links)
    for direction in ("ab", "ba"):
        shares = [
            direction_shares(None if c is None else Category(c), cap_pct, vol_pct)
            for c, cap_pct, vol_pct in zip(
                links["category"],
                links[f"{direction}_cap_pct_diff"],
                links[f"{direction}_vol_pct_diff"],
            )
        ]
        shares = np.array(shares, dtype=float).reshape(-1, 2)
        links[f"{direction}_cap_ratio"] = shares[:, 0]
        links[f"{direction}_vol_ratio"] = shares[:, 1]
        # a decrease in delay is a positive benefit
        benefit = -links[f"{direction}_delay_diff"].to_numpy(dtype=float)
        links[f"{direction}_prim_ben"] = snap_to_zero(
            benefit * shares[:, 0], settings.zero_snap
        )
        links[f"{direction}_sec_ben"] = snap_to_zero(
            benefit * shares[:, 1], settings.zero_snap
        )
    return links


class BenefitClassification(Component):
    """Classify link delay change as primary and / or secondary benefit.

    Governed by ClassificationConfig.
    """

    def __init__(self, controller: RunController):
        super().__init__(controller)

    def validate_inputs(self):
        """No inputs besides the link records."""

    @LogStartEnd("Benefit classification", level="STATUS")
    def run(self, context: RunContext) -> RunContext:
        """Classify the links in the context."""
        links = classify_links(context.require("links"), self.config.classification)
        counts = links["category"].fillna("null").value_counts()
        self.logger.log_dict(counts.to_dict(), level="DETAIL")
        self.logger.log(
            f"link primary benefits {(links['ab_prim_ben'] + links['ba_prim_ben']).sum():.4f},"
            f" secondary benefits {(links['ab_sec_ben'] + links['ba_sec_ben']).sum():.4f}"
        )
        return dataclasses.replace(context, links=links)
