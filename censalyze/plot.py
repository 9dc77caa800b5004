import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from pandas import DataFrame
from geopandas import GeoDataFrame


def moe_plot(data: DataFrame, estimate: str = 'estimate', moe: str = 'moe', label: str = 'NAME', ax: Axes = None, **kwargs) -> Axes:
    """
    Draws each estimate as a dot with a horizontal bar spanning its margin of error,
    sorted from smallest to largest estimate.

    Parameters
    ==========
    data : :class:`pandas.DataFrame`
        A table of estimates.
    estimate, moe, label : :obj:`str`
        The columns holding the estimates, their margins of error, and the row labels.
    ax : :class:`matplotlib.axes.Axes` = None
        The axes to draw on. A new figure is created if not given.
    **kwargs
        Passed to :meth:`matplotlib.axes.Axes.errorbar`.
    """
    if ax is None:
        _, ax = plt.subplots(figsize=(8, max(3, 0.3 * len(data))))

    df = data.sort_values(by=estimate).reset_index(drop=True)
    positions = range(len(df))
    style = {'fmt': 'o', 'color': 'navy', 'ecolor': 'gray', 'capsize': 2}
    style.update(kwargs)

    ax.errorbar(df[estimate], positions, xerr=df[moe], **style)
    ax.set_yticks(list(positions))
    ax.set_yticklabels(df[label])
    ax.set_xlabel(estimate)
    return ax


def choropleth(data: GeoDataFrame, column: str, ax: Axes = None, **kwargs) -> Axes:
    """
    Draws a choropleth map of ``column`` with a legend.

    Parameters
    ==========
    data : :class:`geopandas.GeoDataFrame`
        Features with the values to map, for example from ``get_acs(..., geometry=True)``.
    column : :obj:`str`
        The column to shade by.
    ax : :class:`matplotlib.axes.Axes` = None
        The axes to draw on. A new figure is created if not given.
    **kwargs
        Passed to :meth:`geopandas.GeoDataFrame.plot`, e.g. ``cmap`` or ``scheme``.
    """
    if ax is None:
        _, ax = plt.subplots(figsize=(8, 6))

    style = {'cmap': 'viridis', 'legend': True, 'edgecolor': 'none'}
    style.update(kwargs)

    data.plot(column=column, ax=ax, **style)
    ax.set_axis_off()
    return ax
