import logging
from os import path
from typing import List, Union
from pandas import DataFrame, concat
from geopandas import GeoDataFrame, read_file
from httpx import BaseTransport

from censalyze.api import download
from censalyze.config import cache_dir
from censalyze.constants import BOUNDARY_LAYERS, TIGER_LINE_DIRECTORIES, GENZ2010_SUMMARY_LEVELS, TIGER2010_VINTAGES, CONGRESS_BY_YEAR, STATES
from censalyze.geography import UnknownGeography, normalize_geography, validate_state

logger = logging.getLogger(__name__)

GENZ_ROOT = 'https://www2.census.gov/geo/tiger/GENZ'
TIGER_ROOT = 'https://www2.census.gov/geo/tiger/TIGER'
RESOLUTIONS = {'500k', '5m', '20m'}


def _layer_name(geography: str, year: int) -> str:
    layer, _ = BOUNDARY_LAYERS[geography]
    if layer == 'zcta5':
        return 'zcta520' if year >= 2020 else 'zcta510'
    if layer == 'puma':
        return 'puma20' if year >= 2022 else 'puma10'
    if layer == 'cd':
        if year not in CONGRESS_BY_YEAR:
            raise ValueError(f'Congressional district boundaries are not available for {year}.')
        return f'cd{CONGRESS_BY_YEAR[year]}'
    return layer


def boundary_url(geography: str, year: int, state: str = None, cb: bool = True, resolution: str = '500k') -> str:
    """
    Builds the URL of a boundary shapefile on ``www2.census.gov`` for a given
    vintage.

    Parameters
    ==========
    geography : :obj:`str`
        The geography, using any name accepted by :func:`.normalize_geography`.
    year : :obj:`int`
        The vintage of the boundaries. Should match the year of the data they will be
        joined to, since geographic identifiers change between vintages.
    state : :obj:`str` = None
        A two-digit state FIPS code. Required for layers published per state
        (tracts, block groups, places, etc.).
    cb : :obj:`bool` = True
        If ``True``, uses the generalized cartographic boundary files (clipped to the
        shoreline). Otherwise uses the full TIGER/Line files. Cartographic files
        exist for 2010 and from 2014 onwards; TIGER/Line files for 2000 and 2010
        come from the ``TIGER2010`` release.
    resolution : :obj:`str` = '500k'
        The resolution of cartographic boundary files: ``500k``, ``5m`` or ``20m``.
        Per-state layers are only published at ``500k``.
    """
    geography = normalize_geography(geography)
    if geography not in BOUNDARY_LAYERS:
        raise UnknownGeography(f"No boundary files are available for '{geography}'.")
    if resolution not in RESOLUTIONS:
        raise ValueError(f"'resolution' must be one of {sorted(RESOLUTIONS)}")

    year = int(year)
    _, national = BOUNDARY_LAYERS[geography]
    if not national and state is None:
        raise ValueError(f"A state is required for '{geography}' boundaries.")

    layer = _layer_name(geography, year)
    scope = 'us' if national else state

    if cb:
        if year == 2010:
            if geography not in GENZ2010_SUMMARY_LEVELS:
                raise UnknownGeography(f"2010 cartographic boundary files are not supported for '{geography}'.")
            if not national or geography == 'zip code tabulation area':
                resolution = '500k'
            return f'{GENZ_ROOT}2010/gz_2010_{scope}_{GENZ2010_SUMMARY_LEVELS[geography]}_00_{resolution}.zip'
        if year < 2014:
            raise ValueError('Cartographic boundary files are available for 2010 and from 2014 onwards; use cb=False for other years.')
        if not national:
            resolution = '500k'
        elif layer == 'nation' and resolution == '500k':
            resolution = '5m'
        return f'{GENZ_ROOT}{year}/shp/cb_{year}_{scope}_{layer}_{resolution}.zip'

    if geography not in TIGER_LINE_DIRECTORIES:
        raise UnknownGeography(f"TIGER/Line downloads are not supported for '{geography}'; use cb=True.")
    directory = TIGER_LINE_DIRECTORIES[geography]
    if year in TIGER2010_VINTAGES:
        return f'{TIGER_ROOT}2010/{directory}/{year}/tl_2010_{scope}_{layer}{str(year)[2:]}.zip'
    return f'{TIGER_ROOT}{year}/{directory}/tl_{year}_{scope}_{layer}.zip'


def default_cb(year: int) -> bool:
    """
    Whether cartographic boundary files are published for ``year``. Other vintages
    fall back to TIGER/Line files.
    """
    return int(year) == 2010 or int(year) >= 2014


def _read_boundary_file(url: str, cache: bool, transport: BaseTransport = None) -> GeoDataFrame:
    local_path = path.join(cache_dir(), path.basename(url))
    if not (cache and path.exists(local_path)):
        download(url, local_path, transport=transport)
    else:
        logger.debug('Using cached boundaries at %s', local_path)
    return read_file(f'zip://{local_path}')


def _normalize_geoid(boundaries: GeoDataFrame, geography: str) -> GeoDataFrame:
    if 'GEOID' not in boundaries.columns:
        candidates = [c for c in boundaries.columns if c.startswith('GEOID')]
        if candidates:
            boundaries = boundaries.rename(columns={candidates[0]: 'GEOID'})
        elif 'GEO_ID' in boundaries.columns:
            # 2010 cartographic files carry the full identifier, e.g. 0500000US48453
            boundaries['GEOID'] = boundaries['GEO_ID'].astype(str).str.split('US').str[-1]
        else:
            candidates = [c for c in boundaries.columns if c.endswith('IDFP00')] or [c for c in boundaries.columns if c == 'STATEFP00']
            if not candidates:
                raise UnknownGeography(f"The '{geography}' boundary file has no GEOID column.")
            boundaries = boundaries.rename(columns={candidates[0]: 'GEOID'})
    boundaries['GEOID'] = boundaries['GEOID'].astype(str)
    if geography == 'us':
        boundaries['GEOID'] = '1'
    return boundaries


def _state_column(boundaries: GeoDataFrame) -> str:
    for column in ['STATEFP', 'STATEFP10', 'STATEFP00', 'STATE']:
        if column in boundaries.columns:
            return column
    return None


def get_boundaries(geography: str, year: int, state: Union[str, List[str]] = None, cb: bool = None, resolution: str = '500k', keep_geo_vars: bool = False, cache: bool = True, transport: BaseTransport = None) -> GeoDataFrame:
    """
    Downloads (or reads from the cache) the boundaries of a geography and returns
    them as a :class:`geopandas.GeoDataFrame` with a ``GEOID`` column matching the
    identifiers of the Census API.

    Parameters
    ==========
    geography : :obj:`str`
        The geography to get boundaries for.
    year : :obj:`int`
        The vintage of the boundaries.
    state : :obj:`str` or :obj:`list` of :obj:`str` = None
        One or more states (FIPS, abbreviation, or name). For per-state layers,
        ``None`` means every state; for national layers, it filters the result.
    cb : :obj:`bool` = None
        Use cartographic boundary files rather than TIGER/Line files. ``None`` uses
        them for the vintages where they are published (2010 and 2014 onwards).
    resolution : :obj:`str` = '500k'
        The resolution of cartographic boundary files.
    keep_geo_vars : :obj:`bool` = False
        If ``False``, only ``GEOID`` and ``geometry`` are kept.
    cache : :obj:`bool` = True
        Reuse files already downloaded to :func:`.cache_dir`.
    transport : :class:`httpx.BaseTransport` = None
        An alternative transport for downloads.
    """
    geography = normalize_geography(geography)
    if geography not in BOUNDARY_LAYERS:
        raise UnknownGeography(f"No boundary files are available for '{geography}'.")
    _, national = BOUNDARY_LAYERS[geography]
    if cb is None:
        cb = default_cb(year)

    if state is None:
        states = None
    elif isinstance(state, (list, tuple)):
        states = [validate_state(s) for s in state]
    else:
        states = [validate_state(state)]

    if national:
        url = boundary_url(geography, year, cb=cb, resolution=resolution)
        boundaries = _read_boundary_file(url, cache=cache, transport=transport)
        state_column = _state_column(boundaries)
        if states is not None and state_column is not None:
            boundaries = boundaries[boundaries[state_column].astype(str).isin(states)]
    else:
        if states is None:
            states = [fips for fips, _, _ in STATES]
        frames = []
        for s in states:
            url = boundary_url(geography, year, state=s, cb=cb, resolution=resolution)
            frames.append(_read_boundary_file(url, cache=cache, transport=transport))
        boundaries = GeoDataFrame(concat(frames, ignore_index=True), crs=frames[0].crs)

    boundaries = _normalize_geoid(boundaries.reset_index(drop=True), geography)
    if not keep_geo_vars:
        boundaries = boundaries[['GEOID', 'geometry']]

    return boundaries


def attach_geometry(data: DataFrame, boundaries: GeoDataFrame) -> GeoDataFrame:
    """
    Inner-joins ``data`` to ``boundaries`` on ``GEOID`` and returns a
    :class:`geopandas.GeoDataFrame`. Rows of ``data`` without a matching boundary are
    dropped, as are boundaries without data.

    Parameters
    ==========
    data : :class:`pandas.DataFrame`
        An estimate table with a ``GEOID`` column.
    boundaries : :class:`geopandas.GeoDataFrame`
        Boundaries with a ``GEOID`` column, typically from :func:`get_boundaries`.
    """
    if 'GEOID' not in data.columns or 'GEOID' not in boundaries.columns:
        raise ValueError("Both 'data' and 'boundaries' need a 'GEOID' column.")

    geometry_col = boundaries.geometry.name
    extra_cols = [c for c in boundaries.columns if c not in data.columns or c == 'GEOID']
    merged = data.merge(DataFrame(boundaries[extra_cols]), on='GEOID', how='inner')
    return GeoDataFrame(merged, geometry=geometry_col, crs=boundaries.crs)
