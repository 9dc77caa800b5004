from typing import List, Union
from pandas import DataFrame, concat
from pandas.api.extensions import register_dataframe_accessor

from censalyze.moe import moe_sum, moe_prop, moe_ratio


@register_dataframe_accessor('census')
class DataFrameCensusAccessor:
    """
    Reshaping and margin of error helpers for Census estimate tables, available as
    ``df.census`` on any :class:`pandas.DataFrame`.
    """
    def __init__(self, pandas_obj) -> None:
        self._obj = pandas_obj

    def _id_cols(self) -> List[str]:
        return [c for c in ('GEOID', 'NAME') if c in self._obj.columns]

    def to_wide(self) -> DataFrame:
        """
        Converts a tidy table (one row per geography and variable) into a wide table.
        ``estimate``/``moe`` become ``<variable>E``/``<variable>M`` columns; a
        ``value`` column becomes one column per variable.
        """
        df = self._obj
        id_cols = self._id_cols()
        if 'variable' not in df.columns:
            raise ValueError("A tidy table needs a 'variable' column.")
        variables = list(dict.fromkeys(df['variable']))

        if 'estimate' in df.columns:
            est = df.pivot(index=id_cols, columns='variable', values='estimate')
            moe = df.pivot(index=id_cols, columns='variable', values='moe') if 'moe' in df.columns else None
            pieces = []
            for v in variables:
                pieces.append(est[v].rename(f'{v}E'))
                if moe is not None:
                    pieces.append(moe[v].rename(f'{v}M'))
            wide = concat(pieces, axis=1)
        elif 'value' in df.columns:
            wide = df.pivot(index=id_cols, columns='variable', values='value')[variables]
            wide.columns.name = None
        else:
            raise ValueError("A tidy table needs either an 'estimate' or a 'value' column.")

        return wide.reset_index()

    def to_tidy(self) -> DataFrame:
        """
        Converts a wide table with ``<variable>E``/``<variable>M`` column pairs into a
        tidy table with ``variable``, ``estimate`` and ``moe`` columns.
        """
        df = self._obj
        id_cols = self._id_cols()
        variables = [c[:-1] for c in df.columns if c.endswith('E') and f'{c[:-1]}M' in df.columns]
        if not variables:
            raise ValueError('No <variable>E/<variable>M column pairs were found.')

        frames = []
        for v in variables:
            piece = df[id_cols].copy()
            piece['variable'] = v
            piece['estimate'] = df[f'{v}E']
            piece['moe'] = df[f'{v}M']
            frames.append(piece)
        tidy = concat(frames, ignore_index=True)
        if 'GEOID' in tidy.columns:
            tidy = tidy.sort_values(by='GEOID', kind='stable')
        return tidy.reset_index(drop=True)

    def summarize(self, by: Union[str, List[str]], estimate: str = 'estimate', moe: str = 'moe') -> DataFrame:
        """
        Sums ``estimate`` within each ``by`` group and combines the margins of error
        with :func:`.moe_sum`.
        """
        def combine(group: DataFrame):
            return {estimate: group[estimate].sum(), moe: moe_sum(group[moe], estimate=group[estimate])}

        grouped = self._obj.groupby(by, sort=False)
        records = []
        for key, group in grouped:
            key = key if isinstance(key, tuple) else (key,)
            by_cols = [by] if isinstance(by, str) else list(by)
            records.append(dict(zip(by_cols, key), **combine(group)))
        return DataFrame(records)

    def derive_prop(self, name: str, num: str, denom: str) -> DataFrame:
        """
        Adds ``<name>E`` (``num`` over ``denom``) and ``<name>M`` (from
        :func:`.moe_prop`) to a wide table. ``num`` must be a subset of ``denom``.

        Parameters
        ==========
        name : :obj:`str`
            The name of the derived estimate.
        num, denom : :obj:`str`
            The variables (without ``E``/``M`` suffix) of the numerator and denominator.
        """
        df = self._obj.copy()
        df[f'{name}E'] = df[f'{num}E'] / df[f'{denom}E']
        df[f'{name}M'] = moe_prop(df[f'{num}E'], df[f'{denom}E'], df[f'{num}M'], df[f'{denom}M'])
        return df

    def derive_ratio(self, name: str, num: str, denom: str) -> DataFrame:
        """
        Like :meth:`derive_prop`, for a ``num`` that is not a subset of ``denom``.
        """
        df = self._obj.copy()
        df[f'{name}E'] = df[f'{num}E'] / df[f'{denom}E']
        df[f'{name}M'] = moe_ratio(df[f'{num}E'], df[f'{denom}E'], df[f'{num}M'], df[f'{denom}M'])
        return df
