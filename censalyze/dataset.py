import logging
from collections import defaultdict
from json.decoder import JSONDecodeError
from typing import Union, Dict, List, Tuple
from numpy import nan
from pandas import DataFrame, concat, to_numeric
from geopandas import GeoDataFrame

import censalyze.census_accessors
from censalyze.api import CensusClient, CensusAPIError
from censalyze.boundaries import get_boundaries, attach_geometry
from censalyze.config import get_api_key
from censalyze.constants import BAD_VALUES, MOE_Z, ESTIMATES_VARIABLES, STATES
from censalyze.geography import Geography, GeographyCollection, normalize_geography, validate_state, validate_county
from censalyze.variable import VariableCollection, GroupCollection, fetch_variables

logger = logging.getLogger(__name__)

VARIABLE_CHUNK_SIZE = 48

Variables = Union[List[str], Dict[str, str], str]


class DatasetError(Exception):
    pass


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _normalize_variables(variables: Variables) -> List[Tuple[str, str]]:
    """
    Returns ``(code, output_name)`` pairs. A dictionary maps output names to codes.
    """
    if variables is None:
        return []
    if isinstance(variables, str):
        return [(variables, variables)]
    if isinstance(variables, dict):
        return [(code, name) for name, code in variables.items()]
    if isinstance(variables, (list, tuple)):
        return [(code, code) for code in variables]
    raise TypeError("'variables' should be a variable code, a list of variable codes, or a dict of output names to variable codes")


def _is_annotation(col: str, cols) -> bool:
    return col.endswith('A') and col[:-1] in cols


class Dataset:
    """
    A base class to represent a Census dataset (product) on the Census Data API.

    Parameters
    ==========
    url_extension : :obj:`str`
        A unique url path that accesses the content for this dataset. Appended to
        ``https://api.census.gov/data/``. For example, ``2022/acs/acs5`` is the
        extension for the 2018-2022 American Community Survey 5-Year Estimates.
    census_api_key : :obj:`str` = None
        A Census API key. Resolved with :func:`.get_api_key` when not given.
    transport : :class:`httpx.AsyncBaseTransport` = None
        An alternative transport for the underlying :class:`.CensusClient`.
    """
    def __init__(self, url_extension: str, census_api_key: str = None, transport=None) -> None:
        self.url_extension = url_extension
        self.census_client = CensusClient(url_extension=url_extension, api_key=get_api_key(census_api_key), transport=transport)
        self._geographies : GeographyCollection = None
        self._variables : VariableCollection = None

    def __repr__(self):
        return f'{self.__class__.__name__} dataset object\n  URL extension: {self.url_extension}'

    def __enter__(self):
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        """
        Releases the underlying :class:`.CensusClient`.
        """
        self.census_client.close()

    @property
    def geographies(self) -> GeographyCollection:
        '''
        The geographies this dataset supports, from its ``geography.json``.
        '''
        if self._geographies is None:
            response = self._get_metadata('/geography.json')
            self._geographies = GeographyCollection(response.json()['fips'])
        return self._geographies

    @property
    def variables(self) -> VariableCollection:
        '''
        The variables available in this dataset, from its ``variables.json``.
        '''
        if self._variables is None:
            try:
                self._variables = fetch_variables(self.census_client)
            except CensusAPIError as e:
                if e.status_code == 404:
                    raise DatasetError(f"The dataset you requested - '{self.url_extension}' - does not exist.")
                raise e
        return self._variables

    @property
    def groups(self) -> GroupCollection:
        return self.variables.groups

    def _get_metadata(self, url: str):
        try:
            return self.census_client.get_sync(url)
        except CensusAPIError as e:
            if e.status_code == 404:
                raise DatasetError(f"The dataset you requested - '{self.url_extension}' - does not exist.")
            raise e

    def _resolve_geography(self, geography: str, state=None, county=None) -> Tuple[Geography, List[Dict[str, str]]]:
        api_geography = normalize_geography(geography)
        hierarchy = GeographyCollection()
        target = hierarchy.get(name=api_geography)
        if isinstance(target, list):
            target = target[0]

        accepts_state = api_geography == 'state' or 'state' in target.requires
        states = [validate_state(s) for s in _as_list(state)]
        counties = _as_list(county)

        if states and not accepts_state:
            logger.warning("'%s' is not nested within states; ignoring the state filter", api_geography)
            states = []
        if counties and len(states) != 1:
            raise ValueError('Requesting specific counties requires exactly one state.')
        if counties and not (api_geography == 'county' or 'county' in target.requires):
            raise ValueError(f"'{api_geography}' is not nested within counties.")

        if not states and 'state' in target.requires and 'state' not in target.wildcard:
            logger.info("Fetching '%s' data for every state", api_geography)
            states = [fips for fips, _, _ in STATES]

        counties = [validate_county(states[0], c, self.census_client) for c in counties]

        filters = []
        for s in states or [None]:
            for c in counties or [None]:
                f = {}
                if s is not None:
                    f['state'] = s
                if c is not None:
                    f['county'] = c
                filters.append(f)

        return target, [hierarchy.build_params(api_geography, f) for f in filters]

    def _request(self, target: Geography, geo_params_list: List[Dict[str, str]], codes: List[str] = (), groups: List[str] = ()) -> DataFrame:
        """
        Requests ``codes`` (in chunks) and ``groups`` for each set of geography
        parameters, merges the pieces on the geography columns, and returns a frame
        with ``GEOID``, ``NAME`` and the (numeric) data columns.
        """
        chunks = [list(codes[i:i + VARIABLE_CHUNK_SIZE]) for i in range(0, len(codes), VARIABLE_CHUNK_SIZE)]
        chunks += [[f'group({g})'] for g in groups]

        params_list = []
        for geo_params in geo_params_list:
            for chunk in chunks:
                params = {'get': ','.join(['NAME'] + chunk)}
                params.update(geo_params)
                params_list.append(params)

        responses = self.census_client.get_many_sync(url_params_list=[('', p) for p in params_list])

        geo_cols = list(target.path)
        key_record_map = defaultdict(dict)
        for response in responses:
            if response.status_code != 200:
                continue # 204: no rows matched this request
            try:
                rows = response.json()
            except JSONDecodeError:
                raise DatasetError(f'There was a problem decoding the result of your Census API call. The following is the response from the Census API:\n\n{response.text}')
            header = rows[0]
            id_cols = [c for c in header if c in geo_cols]
            for row in rows[1:]:
                record = dict(zip(header, row))
                key = tuple(record[c] for c in id_cols)
                key_record_map[key].update(record)

        if len(key_record_map) == 0:
            raise DatasetError('Your Census API request returned no data. Check that the geography exists for this dataset and year; geographic areas are sometimes renamed or renumbered between vintages.')

        df = DataFrame.from_records(list(key_record_map.values()))
        present_geo_cols = [c for c in geo_cols if c in df.columns]
        df['GEOID'] = df[present_geo_cols].astype(str).agg(''.join, axis=1)

        data_cols = [c for c in df.columns if c not in present_geo_cols + ['GEOID', 'NAME', 'GEO_ID'] and not _is_annotation(c, df.columns)]
        for c in data_cols:
            df[c] = to_numeric(df[c], errors='coerce')
            df[c] = df[c].where(~df[c].isin(BAD_VALUES), nan)

        df = df[['GEOID', 'NAME'] + data_cols]
        return df.sort_values(by='GEOID', kind='stable').reset_index(drop=True)

    @staticmethod
    def _value_output(df: DataFrame, pairs: List[Tuple[str, str]], output: str, summary_var: str = None) -> DataFrame:
        rename = {code: name for code, name in pairs}
        value_cols = [code for code, _ in pairs]

        if output == 'wide':
            out = df[['GEOID', 'NAME'] + value_cols].rename(columns=rename)
            if summary_var:
                out['summary_value'] = df[summary_var]
            return out

        tidy = df.melt(id_vars=['GEOID', 'NAME'], value_vars=value_cols, var_name='variable', value_name='value')
        tidy['variable'] = tidy['variable'].map(rename)
        if summary_var:
            tidy = tidy.merge(df[['GEOID', summary_var]].rename(columns={summary_var: 'summary_value'}), on='GEOID', how='left')
        return tidy.sort_values(by='GEOID', kind='stable').reset_index(drop=True)


def _check_output(output: str) -> None:
    if output not in ('tidy', 'wide'):
        raise ValueError("'output' must be either 'tidy' or 'wide'")


# --- SPECIFIC DATASETS ---
class ACS(Dataset):
    """
    Data from the American Community Survey.

    Parameters
    ==========
    year : :obj:`int` = 2022
        The last year of the survey period. For example, 2022 with ``acs5`` is the
        2018-2022 5-year ACS.
    survey : :obj:`str` = 'acs5'
        One of ``acs1``, ``acs3`` or ``acs5``.
    extension : :obj:`str` = None
        A product extension: ``subject`` (subject tables), ``profile`` (data
        profiles), ``cprofile`` (comparison profiles). ``None`` means detailed tables.
    census_api_key : :obj:`str` = None
        A Census API key.
    """
    SURVEY_YEARS = {'acs1': 1, 'acs3': 3, 'acs5': 5}

    def __init__(self, year: int = 2022, survey: str = 'acs5', extension: str = None, census_api_key: str = None, transport=None) -> None:
        if survey not in self.SURVEY_YEARS:
            raise DatasetError(f"'survey' must be one of {list(self.SURVEY_YEARS)}")
        self.year = int(year)
        self.survey = survey
        self.extension = extension
        super().__init__(url_extension=self._make_url_extension(self.year, survey, extension), census_api_key=census_api_key, transport=transport)

    @staticmethod
    def _make_url_extension(year, survey, extension):
        url = f'{year}/acs/{survey}'
        if extension:
            url += f'/{extension}'
        return url

    @staticmethod
    def infer_extension(codes: List[str]) -> str:
        """
        Infers the product extension from variable or table codes: ``S`` codes are
        subject tables, ``DP`` data profiles, ``CP`` comparison profiles, and
        everything else detailed tables.
        """
        def extension_of(code: str):
            if code.startswith('DP'):
                return 'profile'
            if code.startswith('CP'):
                return 'cprofile'
            if code.startswith('S'):
                return 'subject'
            return None

        extensions = {extension_of(c) for c in codes}
        if len(extensions) > 1:
            raise DatasetError('Variables from different ACS products (detailed tables, subject tables, data profiles, comparison profiles) must be requested separately.')
        return extensions.pop() if extensions else None

    @staticmethod
    def strip_suffix(code: str) -> str:
        if code.endswith('E') or code.endswith('M'):
            return code[:-1]
        return code

    def get_data(self, geography: str, variables: Variables = None, table: str = None, state=None, county=None, output: str = 'tidy', moe_level: int = 90, summary_var: str = None) -> DataFrame:
        """
        Gets estimates and margins of error.

        Parameters
        ==========
        geography : :obj:`str`
            The geography of the data, e.g. ``state``, ``county``, ``tract``, ``cbsa``.
        variables : :obj:`str`, :obj:`list` of :obj:`str` or :obj:`dict` of :obj:`str`: :obj:`str` = None
            Variable codes, with or without their ``E`` suffix. A dictionary maps
            output names to codes, for example ``{"medinc": "B19013_001"}``.
        table : :obj:`str` = None
            A whole table to request, for example ``B19001``.
        state, county : scalar or :obj:`list` = None
            Geographic filters. States may be FIPS codes, abbreviations or names;
            counties may be FIPS codes or names.
        output : :obj:`str` = 'tidy'
            ``tidy`` gives one row per geography and variable with ``estimate`` and
            ``moe`` columns; ``wide`` gives one row per geography with ``E``/``M``
            columns.
        moe_level : :obj:`int` = 90
            The confidence level of the returned margins of error: 90, 95 or 99.
        summary_var : :obj:`str` = None
            A variable (typically a denominator) returned alongside every row as
            ``summary_est`` and ``summary_moe``.
        """
        _check_output(output)
        if moe_level not in MOE_Z:
            raise ValueError(f"'moe_level' must be one of {sorted(MOE_Z)}")
        if variables is None and table is None:
            raise ValueError("Either 'variables' or 'table' must be supplied.")

        pairs = [(self.strip_suffix(code), self.strip_suffix(name) if name == code else name) for code, name in _normalize_variables(variables)]
        summary = self.strip_suffix(summary_var) if summary_var else None

        codes = []
        for code in [c for c, _ in pairs] + ([summary] if summary else []):
            for suffix in ('E', 'M'):
                if code + suffix not in codes:
                    codes.append(code + suffix)

        logger.info('Getting data from the %d-%d %d-year ACS', self.year - self.SURVEY_YEARS[self.survey] + 1, self.year, self.SURVEY_YEARS[self.survey])
        target, geo_params_list = self._resolve_geography(geography, state=state, county=county)
        df = self._request(target, geo_params_list, codes=codes, groups=_as_list(table))

        if table:
            table_codes = [c[:-1] for c in df.columns if c.startswith(f'{table}_') and c.endswith('E') and f'{c[:-1]}M' in df.columns]
            known = {c for c, _ in pairs}
            pairs += [(c, c) for c in table_codes if c not in known]

        factor = MOE_Z[moe_level] / MOE_Z[90]
        for code in {c for c, _ in pairs} | ({summary} if summary else set()):
            df[f'{code}M'] = df[f'{code}M'] * factor

        if output == 'wide':
            out = df[['GEOID', 'NAME']].copy()
            for code, name in pairs:
                out[f'{name}E'] = df[f'{code}E']
                out[f'{name}M'] = df[f'{code}M']
            if summary:
                out['summary_est'] = df[f'{summary}E']
                out['summary_moe'] = df[f'{summary}M']
            return out

        frames = []
        for code, name in pairs:
            piece = df[['GEOID', 'NAME']].copy()
            piece['variable'] = name
            piece['estimate'] = df[f'{code}E']
            piece['moe'] = df[f'{code}M']
            if summary:
                piece['summary_est'] = df[f'{summary}E']
                piece['summary_moe'] = df[f'{summary}M']
            frames.append(piece)
        tidy = concat(frames, ignore_index=True)
        return tidy.sort_values(by='GEOID', kind='stable').reset_index(drop=True)


class Decennial(Dataset):
    """
    Data from the Decennial Census.

    Parameters
    ==========
    year : :obj:`int` = 2020
        2000, 2010 or 2020.
    sumfile : :obj:`str` = None
        The summary file, for example ``pl`` (redistricting data), ``dhc``, ``dp``,
        ``sf1`` or ``sf2``. Defaults to ``pl`` for 2020 and ``sf1`` otherwise.
    census_api_key : :obj:`str` = None
        A Census API key.
    """
    def __init__(self, year: int = 2020, sumfile: str = None, census_api_key: str = None, transport=None) -> None:
        self.year = int(year)
        if self.year not in (2000, 2010, 2020):
            raise DatasetError('Decennial Census data are available for 2000, 2010 and 2020.')
        if sumfile is None:
            sumfile = 'pl' if self.year == 2020 else 'sf1'
        self.sumfile = sumfile
        super().__init__(url_extension=self._make_url_extension(self.year, sumfile), census_api_key=census_api_key, transport=transport)

    @staticmethod
    def _make_url_extension(year, sumfile):
        return f'{year}/dec/{sumfile}'

    def get_data(self, geography: str, variables: Variables = None, table: str = None, state=None, county=None, output: str = 'tidy', summary_var: str = None) -> DataFrame:
        """
        Gets decennial counts. Parameters mirror :meth:`ACS.get_data`; the result has
        a ``value`` column (tidy) or one column per variable (wide), and
        ``summary_value`` when ``summary_var`` is given.
        """
        _check_output(output)
        if variables is None and table is None:
            raise ValueError("Either 'variables' or 'table' must be supplied.")

        pairs = _normalize_variables(variables)
        codes = [c for c, _ in pairs]
        if summary_var and summary_var not in codes:
            codes.append(summary_var)

        logger.info('Getting data from the %d decennial Census (%s)', self.year, self.sumfile)
        target, geo_params_list = self._resolve_geography(geography, state=state, county=county)
        df = self._request(target, geo_params_list, codes=codes, groups=_as_list(table))

        if table:
            known = set(codes)
            pairs += [(c, c) for c in df.columns if c.startswith(f'{table}_') and c not in known]

        return self._value_output(df, pairs, output, summary_var=summary_var)


class Estimates(Dataset):
    """
    Data from the Population Estimates Program, as hosted on the Census Data API
    (vintages 2015 through 2019).

    Parameters
    ==========
    year : :obj:`int` = 2019
        The vintage of the estimates.
    product : :obj:`str` = 'population'
        One of ``population``, ``components`` or ``housing``.
    census_api_key : :obj:`str` = None
        A Census API key.
    """
    def __init__(self, year: int = 2019, product: str = 'population', census_api_key: str = None, transport=None) -> None:
        self.year = int(year)
        if not 2015 <= self.year <= 2019:
            raise DatasetError('Population estimates on the Census Data API are available for vintages 2015 through 2019.')
        if product not in ESTIMATES_VARIABLES:
            raise DatasetError(f"'product' must be one of {list(ESTIMATES_VARIABLES)}")
        self.product = product
        super().__init__(url_extension=self._make_url_extension(self.year, product), census_api_key=census_api_key, transport=transport)

    @staticmethod
    def _make_url_extension(year, product):
        return f'{year}/pep/{product}'

    def get_data(self, geography: str, variables: Variables = None, state=None, county=None, output: str = 'tidy') -> DataFrame:
        _check_output(output)
        if variables is None:
            variables = ESTIMATES_VARIABLES[self.product]
        pairs = _normalize_variables(variables)

        target, geo_params_list = self._resolve_geography(geography, state=state, county=county)
        df = self._request(target, geo_params_list, codes=[c for c, _ in pairs])
        return self._value_output(df, pairs, output)


def _with_geometry(data: DataFrame, geography: str, year: int, state, cb: bool, resolution: str, transport=None) -> GeoDataFrame:
    boundaries = get_boundaries(geography, year=year, state=state, cb=cb, resolution=resolution, transport=transport)
    return attach_geometry(data, boundaries)


def get_acs(geography: str, variables: Variables = None, table: str = None, year: int = 2022, survey: str = 'acs5', state=None, county=None, output: str = 'tidy', moe_level: int = 90, summary_var: str = None, geometry: bool = False, cb: bool = None, resolution: str = '500k', key: str = None, transport=None, boundary_transport=None) -> Union[DataFrame, GeoDataFrame]:
    """
    Gets American Community Survey estimates and margins of error. See
    :meth:`ACS.get_data` for the parameters. The ACS product (detailed, subject,
    profile, comparison profile) is inferred from the variable codes.

    If ``geometry`` is ``True``, boundaries of the same vintage are joined on
    ``GEOID`` and a :class:`geopandas.GeoDataFrame` is returned. ``cb`` and
    ``resolution`` are passed to :func:`.get_boundaries`.
    """
    codes = [code for code, _ in _normalize_variables(variables)] + _as_list(table)
    extension = ACS.infer_extension(codes)
    with ACS(year=year, survey=survey, extension=extension, census_api_key=key, transport=transport) as dataset:
        data = dataset.get_data(geography, variables=variables, table=table, state=state, county=county, output=output, moe_level=moe_level, summary_var=summary_var)
    if geometry:
        return _with_geometry(data, geography, year, state, cb, resolution, transport=boundary_transport)
    return data


def get_decennial(geography: str, variables: Variables = None, table: str = None, year: int = 2020, sumfile: str = None, state=None, county=None, output: str = 'tidy', summary_var: str = None, geometry: bool = False, cb: bool = None, resolution: str = '500k', key: str = None, transport=None, boundary_transport=None) -> Union[DataFrame, GeoDataFrame]:
    """
    Gets Decennial Census counts. See :meth:`Decennial.get_data` for the parameters.
    With ``geometry=True``, 2000 boundaries come from TIGER/Line files and 2010 and
    2020 boundaries from cartographic files unless ``cb`` says otherwise.
    """
    with Decennial(year=year, sumfile=sumfile, census_api_key=key, transport=transport) as dataset:
        data = dataset.get_data(geography, variables=variables, table=table, state=state, county=county, output=output, summary_var=summary_var)
    if geometry:
        return _with_geometry(data, geography, year, state, cb, resolution, transport=boundary_transport)
    return data


def get_estimates(geography: str, product: str = 'population', variables: Variables = None, year: int = 2019, state=None, county=None, output: str = 'tidy', geometry: bool = False, cb: bool = None, resolution: str = '500k', key: str = None, transport=None, boundary_transport=None) -> Union[DataFrame, GeoDataFrame]:
    """
    Gets Population Estimates Program data. See :class:`Estimates`.
    """
    with Estimates(year=year, product=product, census_api_key=key, transport=transport) as dataset:
        data = dataset.get_data(geography, variables=variables, state=state, county=county, output=output)
    if geometry:
        return _with_geometry(data, geography, year, state, cb, resolution, transport=boundary_transport)
    return data
