import logging
from collections import defaultdict
from json.decoder import JSONDecodeError
from typing import Dict, List, Union
from pandas import DataFrame, to_numeric

from censalyze.api import CensusClient, CensusAPIError
from censalyze.config import get_api_key
from censalyze.constants import PUMS_ID_VARIABLES, PUMS_PERSON_REP_WEIGHTS, PUMS_HOUSING_REP_WEIGHTS
from censalyze.dataset import DatasetError
from censalyze.geography import validate_state
from censalyze.variable import Variable

logger = logging.getLogger(__name__)

PUMS_CHUNK_SIZE = 45
REP_WEIGHT_TYPES = {
    'person': PUMS_PERSON_REP_WEIGHTS,
    'housing': PUMS_HOUSING_REP_WEIGHTS,
    'both': PUMS_PERSON_REP_WEIGHTS + PUMS_HOUSING_REP_WEIGHTS,
}
WEIGHT_VARIABLES = set(['WGTP', 'PWGTP'] + PUMS_PERSON_REP_WEIGHTS + PUMS_HOUSING_REP_WEIGHTS)
PSEUDO_VARIABLES = {'for', 'in', 'ucgid'}


def pums_url_extension(year: int, survey: str) -> str:
    if survey not in ('acs1', 'acs5'):
        raise DatasetError("'survey' must be either 'acs1' or 'acs5'")
    return f'{year}/acs/{survey}/pums'


def _filter_value(value) -> str:
    if isinstance(value, (list, tuple)):
        return ','.join(str(v) for v in value)
    return str(value)


def _get_variable_metadata(census_client: CensusClient, names: List[str]) -> Dict[str, Variable]:
    responses = census_client.get_many_sync(url_params_list=[(f'/variables/{n}.json', None) for n in names])
    return {n: Variable(name=n, info=r.json()) for n, r in zip(names, responses)}


def get_pums(variables: Union[str, List[str]] = None, state: Union[str, List[str]] = None, puma: Union[str, List[str]] = None, year: int = 2022, survey: str = 'acs5', variables_filter: Dict[str, Union[str, int, List]] = None, rep_weights: str = None, recode: bool = False, key: str = None, transport=None) -> DataFrame:
    """
    Gets individual-level records from the American Community Survey Public Use
    Microdata Sample. Every row is a person; household variables repeat for each
    member of a household.

    Parameters
    ==========
    variables : :obj:`str` or :obj:`list` of :obj:`str` = None
        PUMS variables, for example ``["AGEP", "SEX", "HHT"]``. ``SERIALNO``,
        ``SPORDER``, ``WGTP``, ``PWGTP`` and ``ST`` are always returned.
    state : :obj:`str` or :obj:`list` of :obj:`str` = None
        One or more states (FIPS, abbreviation or name). Required.
    puma : :obj:`str` or :obj:`list` of :obj:`str` = None
        Public use microdata area codes within ``state``.
    year : :obj:`int` = 2022
        The last year of the survey period.
    survey : :obj:`str` = 'acs5'
        ``acs1`` or ``acs5``.
    variables_filter : :obj:`dict` = None
        Filters applied by the API, for example ``{"SEX": 2, "AGEP": "18:64"}``. A
        ``lo:hi`` string is an inclusive range.
    rep_weights : :obj:`str` = None
        ``person``, ``housing`` or ``both``: adds the 80 replicate weights of that type.
    recode : :obj:`bool` = False
        If ``True``, adds a ``<VARIABLE>_label`` column with the value labels of each
        categorical variable.
    key : :obj:`str` = None
        A Census API key.
    transport : :class:`httpx.AsyncBaseTransport` = None
        An alternative transport for the underlying :class:`.CensusClient`.
    """
    if state is None:
        raise ValueError("'state' is required to request PUMS data.")
    if rep_weights is not None and rep_weights not in REP_WEIGHT_TYPES:
        raise ValueError(f"'rep_weights' must be one of {list(REP_WEIGHT_TYPES)}")

    if variables is None:
        variables = []
    elif isinstance(variables, str):
        variables = [variables]
    states = [validate_state(s) for s in (state if isinstance(state, (list, tuple)) else [state])]
    if puma is not None and len(states) != 1:
        raise ValueError("Requesting specific PUMAs requires exactly one state.")

    requested = [v for v in variables if v not in PUMS_ID_VARIABLES]
    weights = REP_WEIGHT_TYPES[rep_weights] if rep_weights else []
    data_vars = requested + [w for w in weights if w not in requested]

    # every chunk carries the record key so the pieces can be merged
    key_vars = ['SERIALNO', 'SPORDER']
    chunks = [PUMS_ID_VARIABLES + data_vars[:PUMS_CHUNK_SIZE]]
    chunks += [key_vars + data_vars[i:i + PUMS_CHUNK_SIZE] for i in range(PUMS_CHUNK_SIZE, len(data_vars), PUMS_CHUNK_SIZE)]

    predicates = {v: _filter_value(f) for v, f in (variables_filter or {}).items()}

    geo_params_list = []
    for s in states:
        if puma is None:
            geo_params_list.append({'for': f'state:{s}'})
        else:
            pumas = ','.join(str(p).zfill(5) for p in (puma if isinstance(puma, (list, tuple)) else [puma]))
            geo_params_list.append({'for': f'public use microdata area:{pumas}', 'in': f'state:{s}'})

    params_list = []
    for geo_params in geo_params_list:
        for chunk in chunks:
            params = {'get': ','.join(chunk)}
            params.update(predicates)
            params.update(geo_params)
            params_list.append(params)

    logger.info('Getting data from the %d %s Public Use Microdata Sample', year, survey)
    with CensusClient(url_extension=pums_url_extension(year, survey), api_key=get_api_key(key), transport=transport) as census_client:
        try:
            responses = census_client.get_many_sync(url_params_list=[('', p) for p in params_list])
        except CensusAPIError as e:
            if e.status_code == 404:
                raise DatasetError(f'PUMS data for {year} ({survey}) are not available on the Census API.')
            raise e
        metadata = _get_variable_metadata(census_client, requested) if requested else {}

    key_record_map = defaultdict(dict)
    for response in responses:
        if response.status_code != 200:
            continue
        try:
            rows = response.json()
        except JSONDecodeError:
            raise DatasetError(f'There was a problem decoding the result of your Census API call. The following is the response from the Census API:\n\n{response.text}')
        header = rows[0]
        for row in rows[1:]:
            record = dict(zip(header, row))
            key_record_map[(record['SERIALNO'], record['SPORDER'])].update(record)

    columns = PUMS_ID_VARIABLES + data_vars
    df = DataFrame.from_records(list(key_record_map.values())).reindex(columns=columns)

    if recode:
        for v in requested:
            items = metadata[v].items
            if items:
                df[f'{v}_label'] = df[v].map(items)

    numeric = ['SPORDER'] + [c for c in columns if c in WEIGHT_VARIABLES] + [v for v in requested if metadata[v].type in (int, float)]
    for c in numeric:
        df[c] = to_numeric(df[c], errors='coerce')

    return df.sort_values(by=['SERIALNO', 'SPORDER'], kind='stable').reset_index(drop=True)


def pums_variables(year: int = 2022, survey: str = 'acs5', key: str = None, transport=None) -> DataFrame:
    """
    Returns the PUMS data dictionary of a survey as a :class:`pandas.DataFrame` with
    columns ``var_code``, ``var_label`` and ``data_type`` (``num`` or ``chr``).
    """
    with CensusClient(url_extension=pums_url_extension(year, survey), api_key=get_api_key(key), transport=transport) as census_client:
        variables_json = census_client.get_sync('/variables.json').json()['variables']

    records = []
    for name in sorted(variables_json):
        if name in PSEUDO_VARIABLES:
            continue
        v = Variable(name=name, info=variables_json[name])
        records.append({'var_code': name, 'var_label': v.label, 'data_type': 'num' if v.type in (int, float) else 'chr'})

    return DataFrame(records, columns=['var_code', 'var_label', 'data_type'])
