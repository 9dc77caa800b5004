"""
Estimation from Public Use Microdata Sample records with successive difference
replicate (SDR) weights.

Each estimate is computed once with the full-sample weight and once with each of
the 80 replicate weights. Its variance is::

    scale * sum_r rscales * (theta_r - center) ** 2

with ``scale = 4/80`` for the ACS and ``center`` the full-sample estimate
(``mse=True``) or the mean of the replicate estimates (``mse=False``).
"""
import logging
from typing import Callable, List, Union
import numpy as np
from pandas import DataFrame, Series

from censalyze.constants import MOE_Z, PUMS_PERSON_REP_WEIGHTS, PUMS_HOUSING_REP_WEIGHTS

logger = logging.getLogger(__name__)

By = Union[str, List[str]]


def _as_by(by: By) -> List[str]:
    if by is None:
        return []
    if isinstance(by, str):
        return [by]
    return list(by)


def weighted_quantile(values, weights, q: float) -> float:
    """
    The smallest value whose cumulative share of the total weight is at least ``q``.
    """
    values = np.asarray(values, dtype=float)
    weights = np.asarray(weights, dtype=float)
    keep = ~np.isnan(values)
    values, weights = values[keep], weights[keep]
    if len(values) == 0 or weights.sum() <= 0:
        return np.nan

    order = np.argsort(values, kind='stable')
    values, weights = values[order], weights[order]
    shares = np.cumsum(weights) / weights.sum()
    idx = min(np.searchsorted(shares, q, side='left'), len(values) - 1)
    return float(values[idx])


class ReplicateWeightDesign:
    """
    A survey design built from a full-sample weight and a set of replicate weights.

    Parameters
    ==========
    data : :class:`pandas.DataFrame`
        Survey responses, one row per sampled unit.
    weight : :obj:`str`
        The full-sample weight column, for example ``PWGTP``.
    rep_weights : :obj:`list` of :obj:`str`
        The replicate weight columns, for example ``PWGTP1`` to ``PWGTP80``.
    scale : :obj:`float` = 4/80
        The overall variance multiplier.
    rscales : :obj:`float` or array-like = 1
        Per-replicate variance multipliers.
    mse : :obj:`bool` = True
        Center the replicate deviations on the full-sample estimate rather than on the
        mean of the replicates.
    moe_level : :obj:`int` = 90
        The confidence level of the returned margins of error.
    """
    def __init__(self, data: DataFrame, weight: str, rep_weights: List[str], scale: float = 4 / 80, rscales=1, mse: bool = True, moe_level: int = 90) -> None:
        missing = [c for c in [weight] + list(rep_weights) if c not in data.columns]
        if missing:
            raise ValueError(f'The following weight columns are missing from the data: {missing}')
        if moe_level not in MOE_Z:
            raise ValueError(f"'moe_level' must be one of {sorted(MOE_Z)}")

        self.data = data
        self.weight = weight
        self.rep_weights = list(rep_weights)
        self.scale = scale
        self.rscales = np.broadcast_to(np.asarray(rscales, dtype=float), (len(self.rep_weights),))
        self.mse = mse
        self.moe_level = moe_level

    def __len__(self):
        return len(self.data)

    def __repr__(self):
        return f'ReplicateWeightDesign of {len(self)} records\n  weight: {self.weight}\n  replicates: {len(self.rep_weights)}\n'

    @property
    def _weight_columns(self) -> List[str]:
        return [self.weight] + self.rep_weights

    def _weights(self) -> np.ndarray:
        return self.data[self._weight_columns].to_numpy(dtype=float)

    def filter(self, mask) -> 'ReplicateWeightDesign':
        """
        Returns a design over the rows selected by ``mask``, keeping the same weights
        and replicate structure.
        """
        return ReplicateWeightDesign(self.data[mask], weight=self.weight, rep_weights=self.rep_weights, scale=self.scale, rscales=self.rscales, mse=self.mse, moe_level=self.moe_level)

    def _summarize(self, thetas: DataFrame, by: List[str]) -> DataFrame:
        """
        Turns a frame of full-sample (first column) and replicate estimates (remaining
        columns) into ``by..., estimate, se, moe``.
        """
        values = thetas.to_numpy(dtype=float)
        estimate, replicates = values[:, 0], values[:, 1:]
        center = estimate if self.mse else replicates.mean(axis=1)
        variance = self.scale * np.sum(self.rscales * (replicates - center[:, None]) ** 2, axis=1)
        se = np.sqrt(variance)

        result = thetas.index.to_frame(index=False) if by else DataFrame(index=[0])
        result['estimate'] = estimate
        result['se'] = se
        result['moe'] = se * MOE_Z[self.moe_level]
        return result.reset_index(drop=True)

    def _weighted_sums(self, x: np.ndarray, by: List[str]) -> DataFrame:
        sums = DataFrame(self._weights() * x[:, None], columns=self._weight_columns, index=self.data.index)
        if by:
            return sums.groupby([self.data[b] for b in by]).sum()
        return sums.sum().to_frame().T

    def _column(self, variable: str) -> np.ndarray:
        return self.data[variable].to_numpy(dtype=float)

    def total(self, variable: str = None, by: By = None) -> DataFrame:
        """
        The weighted total of ``variable``, or the weighted count of records (the sum
        of weights) if no variable is given.
        """
        by = _as_by(by)
        x = np.ones(len(self.data)) if variable is None else self._column(variable)
        return self._summarize(self._weighted_sums(x, by), by)

    def mean(self, variable: str, by: By = None) -> DataFrame:
        """
        The weighted mean of ``variable``.
        """
        return self.ratio(variable, None, by=by)

    def ratio(self, numerator: str, denominator: str = None, by: By = None) -> DataFrame:
        """
        The ratio of the weighted totals of ``numerator`` and ``denominator``. Without
        a denominator, this is the weighted mean of ``numerator``. Records missing
        either value are left out of both totals.
        """
        by = _as_by(by)
        num_x = self._column(numerator)
        den_x = np.ones(len(self.data)) if denominator is None else self._column(denominator)
        missing = np.isnan(num_x) | np.isnan(den_x)
        if missing.any():
            logger.debug("Dropping %d records with missing values from the ratio of '%s'", missing.sum(), numerator)
            num_x = np.where(missing, 0.0, num_x)
            den_x = np.where(missing, 0.0, den_x)
        num = self._weighted_sums(num_x, by)
        den = self._weighted_sums(den_x, by)
        return self._summarize(num / den, by)

    def proportion(self, by: By, within: By = None) -> DataFrame:
        """
        The weighted share of each ``by`` group, out of everyone or out of each
        ``within`` group.
        """
        by, within = _as_by(by), _as_by(within)
        if not by:
            raise ValueError("'by' is required to compute proportions.")
        keys = within + [b for b in by if b not in within]
        counts = self._weighted_sums(np.ones(len(self.data)), keys)

        if within:
            totals = counts.groupby(level=list(range(len(within)))).transform('sum')
        else:
            totals = DataFrame([counts.sum().to_numpy()] * len(counts), index=counts.index, columns=counts.columns)
        return self._summarize(counts / totals, keys)

    def quantile(self, variable: str, q: float = 0.5, by: By = None) -> DataFrame:
        """
        The weighted ``q`` quantile of ``variable``, e.g. the median with ``q=0.5``.
        """
        by = _as_by(by)
        if not 0 <= q <= 1:
            raise ValueError("'q' must be between 0 and 1")

        def per_group(group: DataFrame) -> Series:
            values = group[variable]
            return Series([weighted_quantile(values, group[w], q) for w in self._weight_columns], index=self._weight_columns)

        if by:
            thetas = self.data.groupby(by)[[variable] + self._weight_columns].apply(per_group)
        else:
            thetas = per_group(self.data).to_frame().T
        return self._summarize(thetas, by)


def to_survey(data: DataFrame, type: str = 'person', **kwargs) -> ReplicateWeightDesign:
    """
    Builds an ACS SDR :class:`.ReplicateWeightDesign` from PUMS records retrieved with
    replicate weights.

    Parameters
    ==========
    data : :class:`pandas.DataFrame`
        Records from :func:`.get_pums` with ``rep_weights`` set.
    type : :obj:`str` = 'person'
        ``person`` uses ``PWGTP``/``PWGTP1-80``. ``housing`` keeps one record per
        household (``SPORDER == 1``) and uses ``WGTP``/``WGTP1-80``.
    """
    if type == 'person':
        weight, rep_weights = 'PWGTP', PUMS_PERSON_REP_WEIGHTS
    elif type == 'housing':
        if 'SPORDER' not in data.columns:
            raise ValueError("Housing designs need the 'SPORDER' column to keep one record per household.")
        data = data[data['SPORDER'] == 1]
        weight, rep_weights = 'WGTP', PUMS_HOUSING_REP_WEIGHTS
    else:
        raise ValueError("'type' must be either 'person' or 'housing'")

    missing = [c for c in [weight] + rep_weights if c not in data.columns]
    if missing:
        raise ValueError(f"The data are missing {len(missing)} {type} replicate weight columns; request them with get_pums(..., rep_weights='{type}').")

    options = dict(scale=4 / 80, rscales=1, mse=True)
    options.update(kwargs)
    return ReplicateWeightDesign(data, weight=weight, rep_weights=rep_weights, **options)


def weighted_count(data: DataFrame, by: By, weight: str = 'PWGTP') -> DataFrame:
    """
    Sums ``weight`` within each ``by`` group. The sum (not the number of records) is
    the population estimate; the result has the ``by`` columns and ``n``.
    """
    by = _as_by(by)
    if weight not in data.columns:
        raise ValueError(f"'{weight}' is not a column of the data.")
    if not by:
        return DataFrame({'n': [data[weight].sum()]})
    return data.groupby(by)[weight].sum().reset_index(name='n')
