from os import environ, path
from tempfile import TemporaryDirectory
from unittest import TestCase, main
from unittest.mock import patch
from httpx import MockTransport, Response
from pandas import DataFrame

from censalyze.api import CensusClient
from censalyze.config import CACHE_DIR_ENV
from censalyze.variable import Variable, VariableCollection, UnknownGroup, VariableError, load_variables

VARIABLES_JSON = {
    'B01001_001E': {'label': 'Estimate!!Total:', 'concept': 'SEX BY AGE', 'predicateType': 'int', 'group': 'B01001'},
    'B01001_002E': {'label': 'Estimate!!Total:!!Male:', 'concept': 'SEX BY AGE', 'predicateType': 'int', 'group': 'B01001'},
    'B01001_003E': {'label': 'Estimate!!Total:!!Male:!!Under 5 years', 'concept': 'SEX BY AGE', 'predicateType': 'int', 'group': 'B01001'},
    'B01001_004E': {'label': 'Estimate!!Total:!!Male:!!5 to 9 years', 'concept': 'SEX BY AGE', 'predicateType': 'int', 'group': 'B01001'},
    'B19013_001E': {'label': 'Estimate!!Median household income in the past 12 months (in 2022 inflation-adjusted dollars)', 'concept': 'MEDIAN HOUSEHOLD INCOME IN THE PAST 12 MONTHS (IN 2022 INFLATION-ADJUSTED DOLLARS)', 'predicateType': 'int', 'group': 'B19013'},
    'NAME': {'label': 'Geographic Area Name', 'concept': None, 'predicateType': 'string', 'group': 'N/A'},
}


class VariableTest(TestCase):
    @classmethod
    def setUpClass(cls):
        cls.variables = VariableCollection(VARIABLES_JSON)

    def test_variable(self):
        v = Variable('B01001_003E', VARIABLES_JSON['B01001_003E'])
        self.assertEqual(v.path, ('sex by age', 'estimate', 'total', 'male', 'under 5 years'))
        self.assertEqual(v.label, 'Estimate!!Total:!!Male:!!Under 5 years')
        self.assertIs(v.type, int)
        self.assertIsNone(Variable('NAME', VARIABLES_JSON['NAME']).group)

        sex = Variable('SEX', {'label': 'Sex', 'predicateType': 'int', 'values': {'item': {'1': 'Male', '2': 'Female'}}})
        self.assertEqual(sex.items, {'1': 'Male', '2': 'Female'})

    def test_collection(self):
        self.assertEqual(len(self.variables), 6)
        self.assertIn('B19013_001', self.variables)
        self.assertEqual(self.variables.get('B19013_001').name, 'B19013_001E')
        self.assertIsNone(self.variables.get('B99999_001'))

    def test_hierarchy(self):
        self.assertEqual(self.variables.parent_of('B01001_003E').name, 'B01001_002E')
        self.assertIsNone(self.variables.parent_of('B01001_001E'))
        self.assertEqual(sorted(self.variables.children_of('B01001_002E').names), ['B01001_003E', 'B01001_004E'])
        with self.assertRaises(VariableError):
            self.variables.parent_of('B99999_001E')
        with self.assertRaises(VariableError):
            self.variables.children_of('B99999_001E')

    def test_filters(self):
        self.assertEqual(self.variables.filter_by_term('male').names, ['B01001_002E', 'B01001_003E', 'B01001_004E'])
        self.assertEqual(self.variables.filter_by_term(['male', 'under']).names, ['B01001_003E'])
        self.assertEqual(self.variables.filter_by_term('household income', by='concept').names, ['B19013_001E'])
        with self.assertRaises(ValueError):
            self.variables.filter_by_term('male', by='name')

        self.assertEqual(len(self.variables.filter_by_group('B01001')), 4)
        with self.assertRaises(UnknownGroup):
            self.variables.filter_by_group('B99999')

    def test_groups(self):
        self.assertEqual([g.name for g in self.variables.groups.to_list()], ['B01001', 'B19013'])
        self.assertEqual(self.variables.groups.get('B01001').concept, 'sex by age')

    def test_to_df(self):
        df = self.variables.to_df()
        self.assertIsInstance(df, DataFrame)
        self.assertEqual(list(df.columns), ['name', 'label', 'concept'])
        self.assertEqual(df['name'].iloc[0], 'B01001_001E')

    def test_load_variables(self):
        requests = []

        def handler(request):
            requests.append(request)
            return Response(200, json={'variables': VARIABLES_JSON})

        client = CensusClient(url_extension='2022/acs/acs5', transport=MockTransport(handler))
        with TemporaryDirectory() as tmp, patch.dict(environ, {CACHE_DIR_ENV: tmp}):
            df = load_variables(2022, 'acs5', cache=True, census_client=client)
            self.assertEqual(len(df), 6)
            self.assertEqual(requests[0].url.path, '/data/2022/acs/acs5/variables.json')
            self.assertTrue(path.exists(path.join(tmp, 'variables_2022_acs5.json')))

            cached = load_variables(2022, 'acs5', cache=True, census_client=client)
            self.assertEqual(len(requests), 1)
            self.assertEqual(list(cached['name']), list(df['name']))


if __name__ == "__main__":
    main()
