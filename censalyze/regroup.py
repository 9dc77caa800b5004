from typing import Dict, List, Iterable, Union
from collections import defaultdict
from re import match
from pandas import DataFrame

from censalyze.moe import moe_sum
from censalyze.variable import VariableCollection

AGE_REGEX = r'((?P<under>under (?P<under_end>\d+) years)|(?P<two>(?P<two_start>\d+) and (?P<two_end>\d+) years)|(?P<to>(?P<to_start>\d+) to (?P<to_end>\d+) years)|(?P<over>(?P<over_start>\d+) years and over)|(?P<one>(?P<one_start>\d+) years))'
MAX_AGE = 120
LABEL_TOKENS_TO_SKIP = {'estimate', 'total'}


class Regrouper:
    """
    An object to handle regrouping Census variables in tidy data.

    Parameters
    ==========
    groupings : :obj:`dict` of :obj:`str`: array-like of :obj:`str`
        Each key in this dictionary is the name of a new group. Each corresponding value
        should be a list of variable codes that fall into that group. For example,
        ``groupings={"under_18": ["B01001_003", "B01001_004", "B01001_005", "B01001_006"]}``
        would sum those four variables into a new variable called ``under_18``. Codes
        may be given with or without their ``E`` suffix.
    """
    def __init__(self, groupings: Dict[str, Iterable[str]] = None) -> None:
        self.groupings = groupings or {}

    def _variable_to_group(self) -> Dict[str, str]:
        lookup = {}
        for group, codes in self.groupings.items():
            for code in codes:
                keys = {code, code[:-1]} if code.endswith('E') else {code}
                for k in keys:
                    if k in lookup and lookup[k] != group:
                        raise ValueError(f"The variable '{code}' has been assigned to more than one group")
                    lookup[k] = group
        return lookup

    def regroup(self, data: DataFrame, variable_col: str = 'variable') -> DataFrame:
        """
        Sums the estimates of each group's variables within each geography and combines
        their margins of error with :func:`.moe_sum`. Rows whose variable is not in any
        group are dropped. Works with ``estimate``/``moe`` and with ``value`` columns.

        Parameters
        ==========
        data : :class:`pandas.DataFrame`
            Tidy data, as returned by :func:`.get_acs` or :func:`.get_decennial`.
        variable_col : :obj:`str` = 'variable'
            The column holding variable codes.
        """
        lookup = self._variable_to_group()
        id_cols = [c for c in ('GEOID', 'NAME') if c in data.columns]

        df = data[data[variable_col].isin(lookup.keys())].copy()
        df[variable_col] = df[variable_col].map(lookup)
        by = id_cols + [variable_col]

        if 'estimate' in df.columns:
            records = []
            for key, group in df.groupby(by, sort=False):
                record = dict(zip(by, key))
                record['estimate'] = group['estimate'].sum()
                if 'moe' in group.columns:
                    record['moe'] = moe_sum(group['moe'], estimate=group['estimate'])
                records.append(record)
            columns = by + ['estimate'] + (['moe'] if 'moe' in df.columns else [])
            return DataFrame(records, columns=columns)

        if 'value' in df.columns:
            return df.groupby(by, sort=False)['value'].sum().reset_index()

        raise ValueError("The data needs either an 'estimate' or a 'value' column to regroup.")


FIVE_RACE_REGROUPER = Regrouper(groupings={
    'white': ['B03002_003'],
    'black': ['B03002_004'],
    'asian': ['B03002_006'],
    'hispanic': ['B03002_012'],
    'other': ['B03002_005', 'B03002_007', 'B03002_008', 'B03002_009'],
})
"""A :class:`.Regrouper` object over table B03002 (Hispanic or Latino origin by race)
that keeps non-Hispanic ``white``, ``black`` and ``asian``, collects every Hispanic
respondent into ``hispanic``, and aggregates non-Hispanic ``american indian and alaska
native alone``, ``native hawaiian and other pacific islander alone``, ``some other race
alone`` and ``two or more races`` into ``other``."""


def _label_tokens(label: str) -> List[str]:
    return [t.replace(':', '').strip() for t in label.lower().split('!!')]


class AgeRegrouper(Regrouper):
    """
    A subclass of the :class:`.Regrouper` class that specifically handles regrouping
    into new age buckets.

    Parameters
    ==========
    age_brackets : :obj:`list` of :obj:`str`
        The new age brackets to group into. Must be of the form
        ``"<start_year>-<end_year>"``, except for the oldest age bracket, which should
        be of the form ``<start_year>+``. For example,
        ``age_brackets=["0-17", "18-29", "30-49", "50-64", "65+"]``.
    variables : :class:`pandas.DataFrame` or :class:`.VariableCollection`
        The variables to group, with their labels: the result of :func:`.load_variables`
        (filtered to a table) or a :class:`.VariableCollection`.

    Each variable whose label contains an age bracket is assigned to a group named
    after the rest of its label and the new bracket, for example ``male|0-17``.
    """
    def __init__(self, age_brackets: List[str], variables: Union[DataFrame, VariableCollection]) -> None:
        self.age_brackets = age_brackets
        self._age_assignments = self._assign_ages(age_brackets)
        super().__init__(groupings=self._build_groupings(variables))

    @staticmethod
    def _assign_ages(age_brackets: List[str]) -> Dict[int, str]:
        age_assignments = {}
        for bracket in age_brackets:
            if bracket[-1] == '+':
                start = int(bracket[:-1])
                stop = MAX_AGE
            elif '-' in bracket:
                ages = bracket.split('-')
                start, stop = int(ages[0]), int(ages[1])
            else:
                raise ValueError('Each age bracket should be formatted like <start>-<stop> or <start>+')

            for i in range(start, stop + 1):
                if i not in age_assignments:
                    age_assignments[i] = bracket
                else:
                    raise ValueError(f"The age {i} has been assigned to more than one age bracket")

        return age_assignments

    def _assign_bracket(self, census_bracket: str, start: int, stop: int) -> str:
        brackets = {self._age_assignments.get(i) for i in range(start, stop + 1)}
        if len(brackets) != 1 or None in brackets:
            raise ValueError(f"The Census age bracket '{census_bracket}' does not fit into the brackets you provided")
        return brackets.pop()

    def _bracket_of(self, element: str) -> str:
        age_match = match(AGE_REGEX, element)
        if age_match is None:
            return None
        if age_match['under'] is not None:
            return self._assign_bracket(element, 0, int(age_match['under_end']) - 1)
        if age_match['two'] is not None:
            return self._assign_bracket(element, int(age_match['two_start']), int(age_match['two_end']))
        if age_match['to'] is not None:
            return self._assign_bracket(element, int(age_match['to_start']), int(age_match['to_end']))
        if age_match['over'] is not None:
            return self._assign_bracket(element, int(age_match['over_start']), MAX_AGE)
        one = int(age_match['one_start'])
        return self._assign_bracket(element, one, one)

    def _build_groupings(self, variables: Union[DataFrame, VariableCollection]) -> Dict[str, List[str]]:
        if isinstance(variables, VariableCollection):
            labels = {v.name: v.label for v in variables}
        elif isinstance(variables, DataFrame):
            labels = dict(zip(variables['name'], variables['label']))
        else:
            labels = dict(variables)

        groupings = defaultdict(list)
        for name, label in labels.items():
            tokens = [t for t in _label_tokens(label) if t not in LABEL_TOKENS_TO_SKIP]
            for i, element in enumerate(tokens):
                bracket = self._bracket_of(element)
                if bracket is not None:
                    tokens[i] = bracket
                    groupings['|'.join(tokens)].append(name)
                    break

        return dict(groupings)
