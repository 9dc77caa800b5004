"""
Moving estimates from one set of polygons (for example, 2010 tracts) onto another
(2020 tracts, school districts, neighbourhoods) that does not nest within it.

Both methods assume values are spread across each source polygon in some known way:
evenly over its area (:func:`interpolate_aw`) or in proportion to a set of
weights such as block populations (:func:`interpolate_pw`). Extensive variables
(counts) are split between targets; intensive variables (rates, medians) are
averaged.
"""
import logging
from typing import List
from pandas import DataFrame
from geopandas import GeoDataFrame, overlay, sjoin

logger = logging.getLogger(__name__)


def _check_crs(*frames: GeoDataFrame) -> None:
    crs = frames[0].crs
    if crs is None:
        raise ValueError('Interpolation needs data with a CRS; use a projected CRS so areas are meaningful.')
    for f in frames[1:]:
        if f.crs != crs:
            raise ValueError(f'All inputs must share a CRS (got {crs} and {f.crs}). Reproject with to_crs() first.')
    if crs.is_geographic:
        logger.warning('Interpolating in a geographic CRS; areas are computed in squared degrees.')


def _target_frame(target: GeoDataFrame, target_id: str) -> GeoDataFrame:
    if target_id not in target.columns:
        raise ValueError(f"'{target_id}' is not a column of the target.")
    return GeoDataFrame({target_id: target[target_id].values}, geometry=target.geometry.values, crs=target.crs)


def _attach(target: GeoDataFrame, values: DataFrame, target_id: str, columns: List[str]) -> GeoDataFrame:
    out = target.merge(values, on=target_id, how='left')
    return out[[target_id] + columns + [out.geometry.name]]


def interpolate_aw(source: GeoDataFrame, target: GeoDataFrame, columns: List[str], extensive: bool = True, target_id: str = 'GEOID') -> GeoDataFrame:
    """
    Area-weighted interpolation.

    Parameters
    ==========
    source : :class:`geopandas.GeoDataFrame`
        Polygons with the values to interpolate.
    target : :class:`geopandas.GeoDataFrame`
        The polygons to interpolate onto.
    columns : :obj:`list` of :obj:`str`
        The columns of ``source`` to interpolate.
    extensive : :obj:`bool` = True
        If ``True``, each source value is split in proportion to the share of the
        source's area falling in each target. Otherwise each target gets the mean of
        the intersecting sources weighted by their share of the target's area.
    target_id : :obj:`str` = 'GEOID'
        The identifier column of ``target``.
    """
    _check_crs(source, target)

    src = GeoDataFrame(source[columns].reset_index(drop=True), geometry=source.geometry.values, crs=source.crs)
    src['_source_area'] = src.geometry.area
    tgt = _target_frame(target, target_id)
    tgt['_target_area'] = tgt.geometry.area

    pieces = overlay(src, tgt, how='intersection', keep_geom_type=True)
    pieces['_area'] = pieces.geometry.area

    if extensive:
        weights = pieces['_area'] / pieces['_source_area']
    else:
        weights = pieces['_area'] / pieces['_target_area']

    weighted = DataFrame({c: pieces[c] * weights for c in columns})
    weighted[target_id] = pieces[target_id].values
    values = weighted.groupby(target_id)[columns].sum(min_count=1).reset_index()

    return _attach(tgt.drop(columns='_target_area'), values, target_id, columns)


def interpolate_pw(source: GeoDataFrame, target: GeoDataFrame, weights: GeoDataFrame, columns: List[str], weight_column: str, extensive: bool = True, target_id: str = 'GEOID') -> GeoDataFrame:
    """
    Population-weighted interpolation. Each weight feature (for example, a Census
    block with its population) is reduced to a point on its surface. A source's values
    are then allocated to targets in proportion to the weight of its points falling in
    each target.

    Parameters
    ==========
    source : :class:`geopandas.GeoDataFrame`
        Polygons with the values to interpolate.
    target : :class:`geopandas.GeoDataFrame`
        The polygons to interpolate onto.
    weights : :class:`geopandas.GeoDataFrame`
        Small features carrying the weight, typically blocks.
    columns : :obj:`list` of :obj:`str`
        The columns of ``source`` to interpolate.
    weight_column : :obj:`str`
        The column of ``weights`` holding the weight, e.g. total population.
    extensive : :obj:`bool` = True
        If ``True``, values are split between targets. Otherwise each target gets the
        weight-weighted mean of the sources its points fall in.
    target_id : :obj:`str` = 'GEOID'
        The identifier column of ``target``.
    """
    _check_crs(source, target, weights)

    points = GeoDataFrame({'_w': weights[weight_column].astype(float).values}, geometry=weights.geometry.representative_point().values, crs=weights.crs)

    src = GeoDataFrame(source[columns].reset_index(drop=True), geometry=source.geometry.values, crs=source.crs)
    src['_source'] = range(len(src))

    points = sjoin(points, src[['_source', src.geometry.name]], how='inner', predicate='intersects').drop(columns='index_right')
    points = points[~points.index.duplicated(keep='first')]
    points = sjoin(points, _target_frame(target, target_id), how='inner', predicate='intersects').drop(columns='index_right')
    points = points[~points.index.duplicated(keep='first')]

    totals = points.groupby('_source')['_w'].transform('sum')
    points['_share'] = (points['_w'] / totals).fillna(0)
    points = points.merge(DataFrame(src.drop(columns=src.geometry.name)), on='_source', how='left')

    if extensive:
        weighted = DataFrame({c: points[c] * points['_share'] for c in columns})
        weighted[target_id] = points[target_id].values
        values = weighted.groupby(target_id)[columns].sum(min_count=1).reset_index()
    else:
        weighted = DataFrame({c: points[c] * points['_w'] for c in columns})
        weighted[target_id] = points[target_id].values
        weighted['_w'] = points['_w'].values
        grouped = weighted.groupby(target_id)
        sums = grouped[columns].sum(min_count=1)
        values = sums.div(grouped['_w'].sum(), axis=0).reset_index()

    return _attach(_target_frame(target, target_id), values, target_id, columns)
