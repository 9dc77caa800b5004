import json
import logging
from typing import List, Dict, Set, Union
from collections import defaultdict
from os import path
from pandas import DataFrame

from censalyze.api import CensusClient
from censalyze.config import cache_dir, get_api_key

logger = logging.getLogger(__name__)


class UnknownGroup(Exception):
    ...


class VariableError(Exception):
    pass


class Group:
    """
    An object that represents a single Census group (table) made up of Census
    variables.

    Parameters
    ==========
    name : :obj:`str`
        The name of the group.
    concept : :obj:`str`
        The concept (description) of the group.
    variables : :obj:`list` of :obj:`str`
        The list of variables name associated with the group.
    """
    def __init__(self, name: str, concept: str, variables: List[str]) -> None:
        self.name = name
        self.concept = concept
        self.variables = sorted(variables)

    def __repr__(self) -> str:
        if len(self.variables) <= 3:
            var_str = '[' + ', '.join(self.variables) + ']'
        else:
            var_str = f'[{self.variables[0]}, ..., {self.variables[-1]}]'
        return f'{self.name}\n  concept: {self.concept}\n  variables ({len(self.variables)}): {var_str}\n'


class GroupCollection:
    """
    An object that represents a collection of :class:`.Group` objects.
    """
    def __init__(self) -> None:
        self._group_map : Dict[str, Group] = {}

    def __iter__(self):
        return iter(self._group_map.values())

    def __len__(self):
        return len(self._group_map)

    def __repr__(self) -> str:
        return f'GroupCollection of {len(self)} groups'

    def __contains__(self, group: str) -> bool:
        return group in self._group_map

    def get(self, group: Union[str, Group]) -> Group:
        """
        Returns the requested :class:`.Group` object if it exists. Otherwise, raises
        an :class:`.UnknownGroup` exception.

        Parameters
        ==========
        group : :obj:`str`
            The requested group.
        """
        if isinstance(group, Group):
            group = group.name

        if group in self._group_map:
            return self._group_map[group]
        raise UnknownGroup(f"The group '{group}' does not exist.")

    def _add(self, group: Group):
        self._group_map[group.name] = group

    def to_list(self) -> List[Group]:
        return sorted(self._group_map.values(), key=lambda g : g.name)


class Variable:
    """
    An object representing a single Census variable.

    Parameters
    ==========
    name : :obj:`str`
        The name of the variable.
    info : dict of :obj:`str`: :obj:`str`
        A dictionary detailing the attributes of the variable, as found in a
        dataset's ``variables.json``.

    Attributes
    ==========
    label : :obj:`str` or None
        The label (description) of the variable, as published.
    group : :obj:`str` or None
        The Census group the variable belongs to.
    concept : :obj:`str` or None
        The concept of the Census group the variable belongs to.
    type : :obj:`type` or None
        ``int`` or ``float`` for numeric variables.
    items : :obj:`dict` of :obj:`str`: :obj:`str` or None
        Value labels of this variable. Only set for variables in certain datasets,
        for example the Public Use Microdata Sample.
    path : :obj:`tuple` of :obj:`str`
        The lowercased label split into individual pieces, with the variable's
        ``concept`` prepended. For example, ``B01001_003E`` has the label
        ``Estimate!!Total:!!Male:!!Under 5 years`` and the path
        ``("sex by age", "estimate", "total", "male", "under 5 years")``.
    """
    def __init__(self, name: str, info: Dict[str, str]) -> None:
        self.name = name
        self.info = info
        self.label = info.get('label', name)
        self.group = info.get('group', None)
        if self.group == 'N/A' or self.group == 'n/a':
            self.group = None
        self.concept = info['concept'].lower() if info.get('concept') else None
        predicate_type = info.get('predicateType', None)
        if predicate_type == 'int':
            self.type = int
        elif predicate_type == 'float':
            self.type = float
        else:
            self.type = None
        self.items = info['values']['item'] if 'values' in info and 'item' in info['values'] else None

        label_parts = self.label.lower().split('!!')
        self.path = tuple(p.replace(':', '').strip() for p in label_parts)
        if self.concept is not None:
            self.path = (self.concept,) + self.path
        self.parent_path = self.path[:-1]
        self.readable_path = ' -> '.join(self.path)

    def __repr__(self) -> str:
        var_str = f'{self.name}\n  group: {self.group}\n  concept: {self.concept}\n  path: [{self.readable_path}]\n'
        if self.items is not None:
            items_str = ', '.join([f'{v} ({k})' for k, v in list(self.items.items())[:5]])
            if len(self.items) > 5:
                items_str += ', ...'
            var_str += f'  items ({len(self.items)}): {items_str}\n'
        return var_str


class VariableCollection:
    """
    An object that represents a collection of :class:`.Variable` objects.

    Parameters
    ==========
    variables_json : dict of :obj:`str`: (dict of :obj:`str`: :obj:`str`)
        A dictionary detailing the attributes of each variable.
    """
    def __init__(self, variables_json: Dict[str, Dict[str, str]]) -> None:
        self._variables_json = variables_json
        self._variable_map : Dict[str, Variable] = {}
        self._path_to_name_map : Dict[tuple, str] = {}
        self._variable_tree : Dict[tuple, Set[tuple]] = {}

        group_map = defaultdict(set)
        self._group_collection = GroupCollection()

        for v_name in sorted(variables_json):
            v = Variable(name=v_name, info=variables_json[v_name])
            self._variable_map[v_name] = v
            self._path_to_name_map[v.path] = v_name
            self._variable_tree[v.path] = set()

            if v.group is not None:
                group_map[(v.group, v.concept)].add(v_name)

        for v in self._variable_map.values():
            if v.parent_path in self._variable_tree:
                self._variable_tree[v.parent_path].add(v.path)

        for (group, concept), variables in group_map.items():
            self._group_collection._add(group=Group(name=group, concept=concept, variables=variables))

    def __iter__(self):
        return iter(self._variable_map.values())

    def __len__(self):
        return len(self._variable_map)

    def __contains__(self, variable: str) -> bool:
        return self.get(variable) is not None

    def __repr__(self):
        return f'VariableCollection of {len(self)} variables'

    def _mask(self, variables: List[Union[str, Variable]]) -> 'VariableCollection':
        names = [v.name if isinstance(v, Variable) else v for v in variables]
        return VariableCollection({n: self._variables_json[n] for n in names if n in self._variables_json})

    @property
    def names(self) -> List[str]:
        """
        A list of the names of each variable in the collection.
        """
        return list(self._variable_map.keys())

    @property
    def groups(self) -> GroupCollection:
        """
        The collection of groups associated with the variables in this collection.
        """
        return self._group_collection

    def get(self, variable: Union[str, Variable]) -> Variable:
        """
        Returns the requested :class:`.Variable` object if it exists. Otherwise, returns
        ``None``. ACS estimates can be requested without their ``E`` suffix.

        Parameters
        ==========
        variable : :obj:`str` or :class:`.Variable`
            The requested variable.
        """
        if isinstance(variable, Variable):
            variable = variable.name

        if variable in self._variable_map:
            return self._variable_map[variable]
        return self._variable_map.get(f'{variable}E')

    def _require(self, variable: Union[str, Variable]) -> Variable:
        v = self.get(variable=variable)
        if v is None:
            raise VariableError(f"'{variable}' is not a variable of this dataset.")
        return v

    def parent_of(self, variable: Union[str, Variable]) -> Variable:
        """
        Returns the parent of the requested variable. For example, ``B01001_002E``
        (path ``(sex by age, estimate, total, male)``) has the parent ``B01001_001E``
        (path ``(sex by age, estimate, total)``).
        """
        v = self._require(variable)
        if v.parent_path in self._path_to_name_map:
            return self.get(self._path_to_name_map[v.parent_path])
        return None

    def children_of(self, variable: Union[str, Variable]) -> 'VariableCollection':
        """
        Returns the children of the requested variable as a new
        :class:`.VariableCollection`.
        """
        v = self._require(variable)
        return self._mask([self._path_to_name_map[p] for p in self._variable_tree[v.path]])

    def filter_by_term(self, term: Union[str, List[str]], by: str = 'label') -> 'VariableCollection':
        """
        Returns a new :class:`.VariableCollection` consisting of all variables
        that match the search. Can filter by each variable's label or by the
        concept of each variable's group. With a list of terms, all terms must match.

        Parameters
        ==========
        term : :obj:`str` or :obj:`list` of :obj:`str`
            The search string or strings.
        by : :obj:`str` = 'label'
            Either 'label' or 'concept'.
        """
        if isinstance(term, str):
            term = [term]

        terms = [t.lower() for t in term]
        if by == 'label':
            v_names = [n for n, v in self._variable_map.items() if all(t in v.label.lower() for t in terms)]
        elif by == 'concept':
            v_names = [n for n, v in self._variable_map.items() if v.concept is not None and all(t in v.concept for t in terms)]
        else:
            raise ValueError("'by' should either be 'label' or 'concept'")
        return self._mask(v_names)

    def filter_by_group(self, group: Union[str, Group]) -> 'VariableCollection':
        """
        Returns a new :class:`.VariableCollection` consisting of all variables within
        the given group.
        """
        g = self.groups.get(group=group)
        return self._mask(g.variables)

    def to_df(self) -> DataFrame:
        """
        Converts the :class:`.VariableCollection` into a :class:`pandas.DataFrame`
        with each variable's name, label and concept, sorted by name.
        """
        var_dicts = [{'name': n, 'label': v.label, 'concept': v.concept} for n, v in self._variable_map.items()]
        return DataFrame(var_dicts, columns=['name', 'label', 'concept']).sort_values(by='name').reset_index(drop=True)

    def to_list(self) -> List[Variable]:
        return list(self._variable_map.values())


def _dataset_url_extension(year: int, dataset: str) -> str:
    if dataset.startswith('acs'):
        return f'{year}/acs/{dataset}'
    return f'{year}/dec/{dataset}'


def fetch_variables(census_client: CensusClient) -> VariableCollection:
    """
    Requests ``variables.json`` through ``census_client`` and wraps it in a
    :class:`.VariableCollection`.
    """
    variables_json = census_client.get_sync('/variables.json').json()['variables']
    return VariableCollection(variables_json)


def load_variables(year: int, dataset: str, cache: bool = False, key: str = None, census_client: CensusClient = None) -> DataFrame:
    """
    Returns a :class:`pandas.DataFrame` of the variables available in a dataset,
    with columns ``name``, ``label`` and ``concept``.

    Parameters
    ==========
    year : :obj:`int`
        The vintage of the dataset.
    dataset : :obj:`str`
        The dataset, for example ``acs5``, ``acs5/subject``, ``acs1/profile``,
        ``acs5/pums``, ``pl``, ``dhc`` or ``sf1``.
    cache : :obj:`bool` = False
        If ``True``, stores the variable metadata in :func:`.cache_dir` and reads it
        from there on later calls.
    key : :obj:`str` = None
        A Census API key.
    census_client : :class:`.CensusClient` = None
        The client to use. Created from ``year`` and ``dataset`` if not given.
    """
    cache_path = path.join(cache_dir(), f"variables_{year}_{dataset.replace('/', '_')}.json") if cache else None

    if cache_path and path.exists(cache_path):
        logger.debug('Reading cached variables from %s', cache_path)
        with open(cache_path) as f:
            return VariableCollection(json.load(f)).to_df()

    if census_client is None:
        with CensusClient(url_extension=_dataset_url_extension(year, dataset), api_key=get_api_key(key)) as client:
            variables = fetch_variables(client)
    else:
        variables = fetch_variables(census_client)

    if cache_path:
        with open(cache_path, 'w') as f:
            json.dump(variables._variables_json, f)

    return variables.to_df()
