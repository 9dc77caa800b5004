from itertools import permutations
from pandas import DataFrame

from censalyze.constants import STATES


class RecodeError(Exception):
    ...


class StateRecoder:
    """
    An object that handles recoding state to various formats. The available formats are:

       + ``FIPS``: FIPS codes with no zero-padding (1, 2, 4, etc.)
       + ``FIPS_PADDED``: FIPS codes with two-digit zero-padding (01, 02, 04, etc.)
       + ``ABBR``: state abbreviations (AL, AK, AZ, etc.)
       + ``NAME``: full state names (Alabama, Alaska, Arizona, etc.)

    """
    def __init__(self) -> None:
        self.types = ['FIPS', 'FIPS_PADDED', 'ABBR', 'NAME']
        self.type_explanations = {
            'FIPS': 'Integer codes. For example: 1 for Alabama, 2 for Alaska, etc.',
            'FIPS_PADDED': '0-padded two-digit integer codes. For example: 01 for Alabama, 02 for Alaska, etc.',
            'ABBR': 'Two character state abbreviations (postal codes). For example: AL for Alabama, AK for Alaska, etc.',
            'NAME': 'Full state names. For example: Alabama, Alaska, etc.',
        }

        self.state_ids = state_ids = {
            'FIPS': [str(int(fips)) for fips, _, _ in STATES],
            'FIPS_PADDED': [fips for fips, _, _ in STATES],
            'ABBR': [abbr for _, abbr, _ in STATES],
            'NAME': [name for _, _, name in STATES],
        }
        self.recode_dicts = {}
        for from_type, to_type in permutations(self.types, 2):
            self.recode_dicts[f'{from_type}_{to_type}'] = dict(zip(state_ids[from_type], state_ids[to_type]))

    def _to_new(self, data: DataFrame, new_type: str, state_col: str = 'state') -> DataFrame:
        values = data[state_col].astype(str)
        if values.isin(self.state_ids[new_type]).all():
            return data.copy()

        for type in [t for t in self.types if t != new_type]:
            record_dict = self.recode_dicts[f'{type}_{new_type}']
            if values.isin(record_dict.keys()).all():
                data = data.copy()
                data[state_col] = values.map(record_dict)
                return data

        exception_string = 'Unable to match your state identifiers to any format. Please make sure you are following one of the following formats.\n\n'
        for type in self.types:
            explanation = self.type_explanations[type]
            exception_string += f'  - {type}: {explanation}\n'

        raise RecodeError(exception_string)

    def to_FIPS(self, data: DataFrame, state_col: str = 'state') -> DataFrame:
        """
        Recodes states as FIPS codes (1, 2, 4, etc.). Attempts to infer the
        original state format. Returns a copy of ``data``.

        Parameters
        ==========
        data : :class:`pandas.DataFrame`
            The data with a column to recode.
        state_col : :obj:`str` = 'state'
            The column in the dataset that list states.
        """
        return self._to_new(data=data, new_type='FIPS', state_col=state_col)

    def to_FIPS_PADDED(self, data: DataFrame, state_col: str = 'state') -> DataFrame:
        """
        Recodes states as two-digit zero-padded FIPS codes (01, 02, 04, etc.).
        """
        return self._to_new(data=data, new_type='FIPS_PADDED', state_col=state_col)

    def to_ABBR(self, data: DataFrame, state_col: str = 'state') -> DataFrame:
        """
        Recodes states as abbreviations (AL, AK, AZ, etc.).
        """
        return self._to_new(data=data, new_type='ABBR', state_col=state_col)

    def to_NAME(self, data: DataFrame, state_col: str = 'state') -> DataFrame:
        """
        Recodes states as full names (Alabama, Alaska, Arizona, etc.).
        """
        return self._to_new(data=data, new_type='NAME', state_col=state_col)
