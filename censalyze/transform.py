from shapely import affinity, union_all
from typing import Dict, Tuple
from geopandas import GeoDataFrame

US_EQUAL_AREA_CRS = 'EPSG:2163'

# state: (scale, x_offset, y_offset, rotation), in metres of the US equal area CRS
SHIFT_EA_BELOW = {
    '02': (1, 600000, -5250000, 45),
    '15': (1, 5000000, -1100000, 45),
    '72': (1, -2500000, 300000, 0)
}

SHIFT_SCALED_BELOW = {
    '02': (0.4, 700000, -4750000, 45),
    '15': (1, 5000000, -1100000, 45),
    '72': (1, -2500000, 300000, 0)
}

SHIFT_EA_OUTSIDE = {
    '02': (1, 550000, -1250000, 45),
    '15': (1, 3100000, -75000, 45),
    '72': (1, -1300000, 200000, 0)
}

SHIFT_SCALED_OUTSIDE = {
    '02': (0.4, 550000, -1750000, 45),
    '15': (1, 3100000, -75000, 45),
    '72': (1, -1300000, 200000, 0)
}


def _transform_geometry(geometry, scale, center, x_offset, y_offset, rotation):
    geometry = affinity.scale(geometry, scale, scale, scale, origin=center)
    geometry = affinity.rotate(geometry, rotation, origin=center)
    geometry = affinity.translate(geometry, x_offset, y_offset)
    return geometry


def _transform(data: GeoDataFrame, states, transformations: Dict[str, Tuple]) -> GeoDataFrame:
    geometry = data.geometry.copy()
    for s, (scale, x_offset, y_offset, rotation) in transformations.items():
        mask = (states == s).to_numpy()
        if not mask.any():
            continue
        # every feature of a state shares one centroid
        centroid = union_all(geometry[mask].values).centroid
        geometry[mask] = geometry[mask].apply(_transform_geometry, args=(scale, centroid, x_offset, y_offset, rotation))

    return data.set_geometry(geometry)


def shift_geometry(data: GeoDataFrame, position: str = 'below', preserve_area: bool = False, state_col: str = None, custom_transformations: Dict[str, Tuple] = None) -> GeoDataFrame:
    """
    Moves (and optionally rescales) Alaska, Hawaii and Puerto Rico next to the
    contiguous United States for national maps. Returns a new
    :class:`geopandas.GeoDataFrame` in the original CRS.

    Parameters
    ==========
    data : :class:`geopandas.GeoDataFrame`
        Features for the whole country, e.g. states, counties or tracts.
    position : :obj:`str` = 'below'
        ``below`` places the three below the contiguous states; ``outside`` places
        them beside it, closer to their true locations.
    preserve_area : :obj:`bool` = False
        If ``False``, Alaska is shrunk to 40% of its size.
    state_col : :obj:`str` = None
        A column of two-digit state FIPS codes. Defaults to the first two characters
        of ``GEOID``.
    custom_transformations : :obj:`dict` of :obj:`str`: :obj:`tuple` = None
        ``{state_fips: (scale, x_offset, y_offset, rotation)}`` to use instead of the
        built-in layouts.
    """
    if data.crs is None:
        raise ValueError('The data must have a CRS to be shifted.')

    if custom_transformations:
        transformations = custom_transformations
    elif position == 'below':
        transformations = SHIFT_EA_BELOW if preserve_area else SHIFT_SCALED_BELOW
    elif position == 'outside':
        transformations = SHIFT_EA_OUTSIDE if preserve_area else SHIFT_SCALED_OUTSIDE
    else:
        raise ValueError("Must set position to either 'below' or 'outside', or use custom_transformations.")

    if state_col is not None:
        states = data[state_col].astype(str).str.zfill(2)
    elif 'GEOID' in data.columns:
        states = data['GEOID'].astype(str).str[:2]
    else:
        raise ValueError("Supply a 'state_col' or include a 'GEOID' column.")

    original_crs = data.crs
    projected = data.to_crs(crs=US_EQUAL_AREA_CRS)
    projected = _transform(projected, states, transformations)

    return projected.to_crs(crs=original_crs)
