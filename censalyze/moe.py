"""
Margin of error algebra for derived American Community Survey estimates.

The formulas follow chapter 8 of the Census Bureau's *Understanding and Using
American Community Survey Data* handbook. Each function accepts scalars, numpy
arrays or pandas Series; Series inputs return Series aligned on the input index.
"""
import numpy as np
from pandas import Series
from scipy.stats import norm

from censalyze.constants import MOE_Z


def _wrap(result, *inputs):
    for i in inputs:
        if isinstance(i, Series):
            return Series(result, index=i.index)
    if np.ndim(result) == 0:
        return float(result)
    return result


def moe_sum(moe, estimate=None, na_rm: bool = False) -> float:
    """
    Margin of error of a sum of estimates: the square root of the sum of squared
    MOEs.

    When ``estimate`` is given and more than one estimate is zero, only the largest
    MOE among the zero estimates is used, as the Census Bureau recommends.

    Parameters
    ==========
    moe : array-like of :obj:`float`
        The margins of error of the summed estimates.
    estimate : array-like of :obj:`float` = None
        The summed estimates.
    na_rm : :obj:`bool` = False
        If ``True``, missing MOEs are ignored; otherwise they make the result NaN.
    """
    moe = np.asarray(moe, dtype=float)

    if estimate is not None:
        estimate = np.asarray(estimate, dtype=float)
        zeros = estimate == 0
        if zeros.sum() > 1:
            max_zero_moe = np.nanmax(moe[zeros]) if na_rm else np.max(moe[zeros])
            moe = np.append(moe[~zeros], max_zero_moe)

    if na_rm:
        return float(np.sqrt(np.nansum(moe ** 2)))
    return float(np.sqrt(np.sum(moe ** 2)))


def moe_ratio(num, denom, moe_num, moe_denom):
    """
    Margin of error of a ratio whose numerator is not a subset of its denominator.
    """
    index_source = next((x for x in (num, denom, moe_num, moe_denom) if isinstance(x, Series)), None)
    num, denom = np.asarray(num, dtype=float), np.asarray(denom, dtype=float)
    m_num, m_denom = np.asarray(moe_num, dtype=float), np.asarray(moe_denom, dtype=float)
    with np.errstate(divide='ignore', invalid='ignore'):
        ratio = num / denom
        result = np.sqrt(m_num ** 2 + ratio ** 2 * m_denom ** 2) / denom
    return _wrap(result, index_source)


def moe_prop(num, denom, moe_num, moe_denom):
    """
    Margin of error of a proportion whose numerator is a subset of its denominator.
    Falls back to :func:`moe_ratio` where the value under the square root is
    negative.
    """
    index_source = next((x for x in (num, denom, moe_num, moe_denom) if isinstance(x, Series)), None)
    num, denom = np.asarray(num, dtype=float), np.asarray(denom, dtype=float)
    m_num, m_denom = np.asarray(moe_num, dtype=float), np.asarray(moe_denom, dtype=float)
    with np.errstate(divide='ignore', invalid='ignore'):
        prop = num / denom
        x = m_num ** 2 - prop ** 2 * m_denom ** 2
        result = np.where(
            x < 0,
            np.sqrt(m_num ** 2 + prop ** 2 * m_denom ** 2) / denom,
            np.sqrt(np.abs(x)) / denom,
        )
    return _wrap(result, index_source)


def moe_product(est1, est2, moe1, moe2):
    """
    Margin of error of the product of two estimates.
    """
    index_source = next((x for x in (est1, est2, moe1, moe2) if isinstance(x, Series)), None)
    e1, e2 = np.asarray(est1, dtype=float), np.asarray(est2, dtype=float)
    m1, m2 = np.asarray(moe1, dtype=float), np.asarray(moe2, dtype=float)
    result = np.sqrt(e1 ** 2 * m2 ** 2 + e2 ** 2 * m1 ** 2)
    return _wrap(result, index_source)


def convert_moe(moe, from_level: int = 90, to_level: int = 95):
    """
    Rescales a margin of error between the 90, 95 and 99 percent confidence levels.
    """
    if from_level not in MOE_Z or to_level not in MOE_Z:
        raise ValueError(f'Confidence levels must be one of {sorted(MOE_Z)}.')
    factor = MOE_Z[to_level] / MOE_Z[from_level]
    if isinstance(moe, Series):
        return moe * factor
    return _wrap(np.asarray(moe, dtype=float) * factor)


def significance(est1, est2, moe1, moe2, clevel: float = 0.90, moe_level: int = 90):
    """
    Tests whether two estimates differ significantly.

    Parameters
    ==========
    est1, est2 : :obj:`float` or array-like
        The estimates to compare.
    moe1, moe2 : :obj:`float` or array-like
        Their margins of error, published at ``moe_level``.
    clevel : :obj:`float` = 0.90
        The confidence level of the test.
    moe_level : :obj:`int` = 90
        The confidence level the MOEs were published at.
    """
    if moe_level not in MOE_Z:
        raise ValueError(f'moe_level must be one of {sorted(MOE_Z)}.')
    index_source = next((x for x in (est1, est2, moe1, moe2) if isinstance(x, Series)), None)
    z_moe = MOE_Z[moe_level]
    se1 = np.asarray(moe1, dtype=float) / z_moe
    se2 = np.asarray(moe2, dtype=float) / z_moe
    diff = np.abs(np.asarray(est1, dtype=float) - np.asarray(est2, dtype=float))
    z = norm.ppf(1 - (1 - clevel) / 2)
    result = diff / np.sqrt(se1 ** 2 + se2 ** 2) > z
    if index_source is not None:
        return Series(result, index=index_source.index)
    if np.ndim(result) == 0:
        return bool(result)
    return result
