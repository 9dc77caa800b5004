import logging
from collections import defaultdict
from typing import Dict, List, Set, Union, Any
from pandas import DataFrame
from thefuzz import process

from censalyze.api import CensusClient
from censalyze.constants import GEOGRAPHY_ALIASES, GEOGRAPHY_HIERARCHIES, ABBR_TO_FIPS, NAME_TO_FIPS, FIPS_TO_ABBR

logger = logging.getLogger(__name__)


class UnknownGeography(Exception):
    pass


class InvalidGeographyHierarchy(Exception):
    pass


GEOGRAPHY_WIDTHS = {
    'state': 2,
    'county': 3,
    'tract': 6,
    'block': 4,
    'place': 5,
    'county subdivision': 5,
    'metropolitan statistical area/micropolitan statistical area': 5,
    'combined statistical area': 3,
    'congressional district': 2,
    'zip code tabulation area': 5,
    'public use microdata area': 5,
    'school district (unified)': 5,
}


def pad_geography_filters(geo_filters: Dict[str, str]) -> Dict[str, str]:
    """
    Pads (with zeros) a set of geography filters to their appropriate lengths.
    Returns a new dictionary.

    Parameters
    ==========
    geo_filters : :obj:`dict` of :obj:`str`: :obj:`str`
        The geography filters to pad.
    """
    padded = {}
    for g, value in geo_filters.items():
        value = str(value)
        if value != '*' and value.isdigit():
            if g in GEOGRAPHY_WIDTHS:
                value = value.zfill(GEOGRAPHY_WIDTHS[g])
            elif g == 'block group':
                value = str(int(value))
        padded[g] = value

    return padded


def normalize_geography(geography: str) -> str:
    """
    Maps a geography name or alias (``cbsa``, ``zcta``, ``puma``, etc.) to the name
    the Census API uses.
    """
    key = ' '.join(geography.lower().split())
    if key not in GEOGRAPHY_ALIASES:
        raise UnknownGeography(f"'{geography}' is not a supported geography. Supported geographies are: {sorted(set(GEOGRAPHY_ALIASES))}")
    return GEOGRAPHY_ALIASES[key]


def validate_state(state: Union[str, int]) -> str:
    """
    Converts a state FIPS code, postal abbreviation, or name into a two-digit FIPS
    code.

    Parameters
    ==========
    state : :obj:`str` or :obj:`int`
        For example ``48``, ``'48'``, ``'TX'``, ``'tx'`` or ``'Texas'``.
    """
    s = str(state).strip()
    if s.isdigit():
        fips = s.zfill(2)
        if fips in FIPS_TO_ABBR:
            return fips
    elif s.upper() in ABBR_TO_FIPS:
        return ABBR_TO_FIPS[s.upper()]
    elif s.lower() in NAME_TO_FIPS:
        return NAME_TO_FIPS[s.lower()]

    raise UnknownGeography(f"'{state}' is not a valid FIPS code, state abbreviation, or state name.")


def validate_county(state: str, county: Union[str, int], census_client: CensusClient, score_cutoff: int = 80) -> str:
    """
    Converts a county FIPS code or name into a three-digit FIPS code. Names are
    matched against the counties of ``state`` reported by the dataset behind
    ``census_client``, so renamed or reorganized counties resolve against the
    vintage being requested.

    Parameters
    ==========
    state : :obj:`str`
        A two-digit state FIPS code.
    county : :obj:`str` or :obj:`int`
        For example ``453``, ``'453'``, ``'Travis'`` or ``'Travis County'``.
    census_client : :class:`.CensusClient`
        The client of the dataset being requested.
    score_cutoff : :obj:`int` = 80
        The minimum fuzzy match score (0-100) for a name to be accepted.
    """
    c = str(county).strip()
    if c.isdigit():
        return c.zfill(3)

    response = census_client.get_sync(params={'get': 'NAME', 'for': 'county:*', 'in': f'state:{state}'})
    rows = response.json()
    header, records = rows[0], rows[1:]
    name_idx, county_idx = header.index('NAME'), header.index('county')
    county_names = {r[name_idx].split(',')[0]: r[county_idx] for r in records}

    for name, fips in county_names.items():
        if name.lower() == c.lower():
            return fips

    match = process.extractOne(c, list(county_names.keys()), score_cutoff=score_cutoff)
    if match is None:
        raise UnknownGeography(f"'{county}' does not match any county in state {state}.")

    logger.info("Using '%s' for county '%s'", match[0], county)
    return county_names[match[0]]


class Geography:
    """
    An object representing a single Census geography hierarchy.

    Parameters
    ==========
    params : :obj:`dict` of :obj:`str`: :obj:`Any`
        A set of parameters detailing the attributes of the Census geography hierarchy,
        in the format of an entry of a dataset's ``geography.json``.

    Attributes
    ==========
    name : :obj:`str` or None
        The name of the geography hierarchy. For example, ``us``, ``region``,
        ``division``, ``state``, etc.
    level : :obj:`str` or None
        The summary level code of the geography hierarchy.
    requires : :obj:`list` of :obj:`str`
        A list of other Census geography hierarchies that this hierarchy depends on.
        For example, ``county`` may require ``state``.
    wildcard : :obj:`list` of :obj:`str`
        The required hierarchies that may be requested with a wildcard. For example,
        ``state`` can be a wildcard when requesting counties.
    path : :obj:`tuple` of :obj:`str`
        A path representing the geography hierarchy. For example,
        ``(state, county, tract)``.
    """
    def __init__(self, params: Dict[str, Any]) -> None:
        self.params = params
        self.name = params.get('name', None)
        self.level = params.get('geoLevelDisplay', None)
        self.requires = params.get('requires', []) or []
        self.wildcard = params.get('wildcard', []) or []

        self.path = tuple(self.requires) + (self.name,)
        self.parent_path = self.path[:-1]
        self.readable_path = ' -> '.join(self.path)

    def __repr__(self) -> str:
        return f'{self.name} ({self.level})\n  requires: {self.requires}\n  wildcards: {self.wildcard}\n  path: [{self.readable_path}]\n'

    def _build_geography_params(self, geo_filters: Dict[str, str]) -> Dict[str, str]:
        geo_filters = pad_geography_filters(geo_filters=geo_filters)
        geo_params = {}

        has_specified_geo = False
        if self.name in geo_filters and geo_filters[self.name] != '*':
            geo_params['for'] = f'{self.name}:{geo_filters[self.name]}'
            has_specified_geo = True
        else:
            geo_params['for'] = f'{self.name}:*'

        in_params = []
        reverse_requires = self.requires[::-1]
        for i, g in enumerate(reverse_requires):
            if g in geo_filters:
                value = geo_filters[g]
            elif g in self.wildcard:
                value = '*'
            else:
                raise InvalidGeographyHierarchy(f"'{g}' must be supplied to request '{self.name}'")

            if value == '*':
                if g not in self.wildcard:
                    raise InvalidGeographyHierarchy(f"'{g}' must be specified and cannot be a wildcard")
                if has_specified_geo is True:
                    raise InvalidGeographyHierarchy(f"cannot use wildcard for '{g}' because one of {reverse_requires[:i] + [self.name]} is already specified")
            else:
                has_specified_geo = True

            in_params.append(f'{g}:{value}')

        if in_params:
            geo_params['in'] = ' '.join(in_params[::-1])

        return geo_params


class GeographyCollection:
    """
    An object representing a collection of available Census geography hierarchies.

    Parameters
    ==========
    supported_geographies_json : :obj:`list` of :obj:`dict` = None
        The ``fips`` entries of a dataset's ``geography.json``. Defaults to the
        hierarchies shared by the ACS and decennial summary files.
    """
    def __init__(self, supported_geographies_json: List[Dict[str, Any]] = None) -> None:
        if supported_geographies_json is None:
            supported_geographies_json = GEOGRAPHY_HIERARCHIES

        self._geographies : List[Geography] = []
        self._geography_tree : Dict[tuple, Set[tuple]] = defaultdict(set)

        paths = set()
        for g in supported_geographies_json:
            geo = Geography(g)
            self._geographies.append(geo)
            paths.add(geo.path)

        for g in self._geographies:
            if g.parent_path in paths:
                self._geography_tree[g.parent_path].add(g.path)

    def __iter__(self):
        return iter(self._geographies)

    def __len__(self):
        return len(self._geographies)

    def __repr__(self):
        return f'GeographyCollection of {len(self)} geographies'

    def get(self, level: str = None, name: str = None) -> Union[Geography, List[Geography]]:
        """
        Returns the requested :class:`.Geography` object if it exists, or a list of
        :class:`.Geography` objects if there are multiple matches. Otherwise, raises
        an :class:`.UnknownGeography` exception. Can search by level or name.

        Parameters
        ==========
        level : :obj:`str`
            The requested geography hierarchy represented by its level.
        name : :obj:`str`
            The requested geography hierarchy represented by its name. Since the same
            name may refer to multiple hierarchies, specifying a name may return a list.
        """
        if not ((level and not name) or (not level and name)):
            raise ValueError("must only provide a 'level' or a 'name'.")
        if level:
            matches = [g for g in self._geographies if g.level == level]
            if len(matches) > 0:
                return matches[0]
            raise UnknownGeography(f'The requested geographic level ({level}) is not available for this dataset.')

        matches = [g for g in self._geographies if g.name == name]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 0:
            return matches
        raise UnknownGeography(f"The current dataset does not have geography '{name}'")

    def build_params(self, name: str, geo_filters: Dict[str, str]) -> Dict[str, str]:
        """
        Builds the ``for``/``in`` query parameters for the geography ``name``. When
        several hierarchies share a name, the first one that accepts ``geo_filters``
        is used.

        Parameters
        ==========
        name : :obj:`str`
            The API name of the target geography.
        geo_filters : :obj:`dict` of :obj:`str`: :obj:`str`
            Values for the target geography and its parents. Missing wildcard parents
            default to ``*``.
        """
        matches = self.get(name=name)
        if isinstance(matches, Geography):
            matches = [matches]

        exceptions = []
        for match in matches:
            try:
                return match._build_geography_params(geo_filters)
            except InvalidGeographyHierarchy as e:
                exceptions.append(e)

        if len(matches) == 1:
            raise exceptions[0]

        exception_str = f'{len(matches)} geographies match the name you specified, but none match the filters you specified:\n\n'
        for g, e in zip(matches, exceptions):
            exception_str += f'{g}error: {e}\n\n'
        raise InvalidGeographyHierarchy(exception_str)

    def to_df(self) -> DataFrame:
        """
        Converts the :class:`.GeographyCollection` into a :class:`pandas.DataFrame`
        object detailing each geography's name, level, and requirements.
        """
        geo_dicts = [{'name': g.name, 'level': g.level, 'requirements': g.requires} for g in self._geographies]
        return DataFrame(geo_dicts).sort_values(by='level').reset_index(drop=True)

    def to_list(self) -> List[Geography]:
        """
        Converts the :class:`.GeographyCollection` into a :obj:`list` of
        :class:`.Geography` objects.
        """
        return list(self._geographies)
