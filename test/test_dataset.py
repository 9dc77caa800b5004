from glob import glob
from io import BytesIO
from math import isnan
from os import environ, path
from tempfile import TemporaryDirectory
from threading import active_count
from unittest import TestCase, main
from unittest.mock import patch
from zipfile import ZipFile
from httpx import MockTransport, Response
from pandas import DataFrame
from geopandas import GeoDataFrame
from shapely.geometry import box

from censalyze.config import CACHE_DIR_ENV
from censalyze.constants import STATES
from censalyze.dataset import ACS, Decennial, Estimates, DatasetError, get_acs, get_decennial, get_estimates
from censalyze.geography import UnknownGeography

STATE_NAMES = {'06': 'California', '48': 'Texas'}
VALUES = {
    'B19013_001E': {'06': '91905', '48': '73035'},
    'B19013_001M': {'06': '277', '48': '229'},
    'B01003_001E': {'06': '39356104', '48': '29243342'},
    'B01003_001M': {'06': '-555555555', '48': '-555555555'},
    'P1_001N': {'06': '39538223', '48': '29145505'},
    'P1_003N': {'06': '16296122', '48': '14609365'},
    'POP': {'06': '39512223', '48': '28995881'},
    'DENSITY': {'06': '253.6', '48': '111.0'},
    'P001001': {'06': '37253956', '48': '25145561'},
}
GROUP_FIELDS = {'B19013': ['GEO_ID', 'B19013_001E', 'B19013_001EA', 'B19013_001M', 'B19013_001MA']}


def expand_fields(fields):
    expanded = []
    for f in fields:
        if f.startswith('group('):
            expanded += GROUP_FIELDS[f[6:-1]]
        else:
            expanded.append(f)
    return expanded


def value_of(field, state):
    if field == 'GEO_ID':
        return f'0400000US{state}'
    if field.endswith('A'):
        return None
    return VALUES.get(field, {}).get(state, '1')


def zipped_shapefile(gdf: GeoDataFrame, name: str) -> bytes:
    with TemporaryDirectory() as tmp:
        gdf.to_file(path.join(tmp, f'{name}.shp'))
        buffer = BytesIO()
        with ZipFile(buffer, 'w') as z:
            for f in glob(path.join(tmp, f'{name}.*')):
                z.write(f, arcname=path.basename(f))
        return buffer.getvalue()


def state_handler(requests):
    def handler(request):
        requests.append(request)
        params = request.url.params
        fields = expand_fields(params['get'].split(','))
        target = params['for'].split(':')[1]
        states = list(STATE_NAMES) if target == '*' else target.split(',')
        rows = [fields + ['state']]
        for s in states:
            rows.append([STATE_NAMES[s] if f == 'NAME' else value_of(f, s) for f in fields] + [s])
        return Response(200, json=rows)
    return handler


class DatasetTest(TestCase):
    def setUp(self) -> None:
        self.requests = []
        self.acs = ACS(year=2022, survey='acs5', transport=MockTransport(state_handler(self.requests)))

    def tearDown(self) -> None:
        self.acs.close()

    def test_dataset_inits(self):
        self.assertEqual(ACS(year=2021, survey='acs1').url_extension, '2021/acs/acs1')
        self.assertEqual(ACS(year=2022, extension='subject').url_extension, '2022/acs/acs5/subject')
        self.assertEqual(Decennial(year=2020).url_extension, '2020/dec/pl')
        self.assertEqual(Decennial(year=2010).url_extension, '2010/dec/sf1')
        self.assertEqual(Decennial(year=2020, sumfile='dhc').url_extension, '2020/dec/dhc')
        self.assertEqual(Estimates(year=2019).url_extension, '2019/pep/population')

        with self.assertRaises(DatasetError):
            ACS(survey='acs2')
        with self.assertRaises(DatasetError):
            Decennial(year=2015)
        with self.assertRaises(DatasetError):
            Estimates(year=2021)
        with self.assertRaises(DatasetError):
            Estimates(product='births')

    def test_infer_extension(self):
        self.assertIsNone(ACS.infer_extension(['B19013_001', 'C17002_001']))
        self.assertEqual(ACS.infer_extension(['S1701_C01_001']), 'subject')
        self.assertEqual(ACS.infer_extension(['DP02_0001P']), 'profile')
        self.assertEqual(ACS.infer_extension(['CP03_2017_062']), 'cprofile')
        with self.assertRaises(DatasetError):
            ACS.infer_extension(['B19013_001', 'S1701_C01_001'])

    def test_tidy_request(self):
        data = self.acs.get_data('state', variables=['B19013_001E'])
        self.assertIsInstance(data, DataFrame)
        self.assertEqual(list(data.columns), ['GEOID', 'NAME', 'variable', 'estimate', 'moe'])
        self.assertEqual(list(data['GEOID']), ['06', '48'])
        self.assertEqual(list(data['variable']), ['B19013_001', 'B19013_001'])
        self.assertEqual(data.loc[data['GEOID'] == '48', 'estimate'].iloc[0], 73035)
        self.assertEqual(data.loc[data['GEOID'] == '48', 'moe'].iloc[0], 229)

        params = self.requests[0].url.params
        self.assertEqual(params['get'], 'NAME,B19013_001E,B19013_001M')
        self.assertEqual(params['for'], 'state:*')

    def test_wide_request(self):
        data = self.acs.get_data('state', variables={'medinc': 'B19013_001', 'pop': 'B01003_001'}, state='TX', output='wide')
        self.assertEqual(list(data.columns), ['GEOID', 'NAME', 'medincE', 'medincM', 'popE', 'popM'])
        self.assertEqual(len(data), 1)
        self.assertEqual(data['NAME'].iloc[0], 'Texas')
        self.assertTrue(isnan(data['popM'].iloc[0]))
        self.assertEqual(self.requests[0].url.params['for'], 'state:48')

    def test_moe_level(self):
        data = self.acs.get_data('state', variables=['B19013_001'], moe_level=95)
        self.assertAlmostEqual(data.loc[data['GEOID'] == '48', 'moe'].iloc[0], 229 * 1.96 / 1.645)
        with self.assertRaises(ValueError):
            self.acs.get_data('state', variables=['B19013_001'], moe_level=80)

    def test_summary_var(self):
        data = self.acs.get_data('state', variables=['B19013_001'], summary_var='B01003_001')
        self.assertIn('summary_est', data.columns)
        self.assertIn('summary_moe', data.columns)
        self.assertEqual(data.loc[data['GEOID'] == '06', 'summary_est'].iloc[0], 39356104)

    def test_table_request(self):
        data = self.acs.get_data('state', table='B19013')
        self.assertEqual(list(data['variable'].unique()), ['B19013_001'])
        self.assertEqual(self.requests[0].url.params['get'], 'NAME,group(B19013)')

    def test_many_variables(self):
        variables = [f'B01001_{i:03d}' for i in range(1, 50)]
        data = self.acs.get_data('state', variables=variables, output='wide')
        self.assertEqual(len(self.requests), 3)
        for request in self.requests:
            self.assertLessEqual(len(request.url.params['get'].split(',')), 49)
        self.assertEqual(len(data.columns), 2 + 2 * 49)
        self.assertEqual(len(data), 2)

    def test_state_fan_out(self):
        requests = []

        def handler(request):
            requests.append(request)
            params = request.url.params
            fields = params['get'].split(',')
            state = params['in'].split(' ')[0].split(':')[1]
            rows = [fields + ['state', 'county', 'tract']]
            rows.append([f'Census Tract 1; County; {state}' if f == 'NAME' else '10' for f in fields] + [state, '001', '000100'])
            return Response(200, json=rows)

        acs = ACS(year=2022, transport=MockTransport(handler))
        data = acs.get_data('tract', variables=['B19013_001'])
        self.assertEqual(len(requests), len(STATES))
        self.assertEqual(len(data), len(STATES))
        self.assertTrue(all(len(g) == 11 for g in data['GEOID']))
        self.assertIn('48001000100', list(data['GEOID']))

    def test_county_by_name(self):
        requests = []

        def handler(request):
            requests.append(request)
            params = request.url.params
            if params['get'] == 'NAME':
                return Response(200, json=[['NAME', 'state', 'county'], ['Travis County, Texas', '48', '453'], ['Harris County, Texas', '48', '201']])
            fields = params['get'].split(',')
            county = params['for'].split(':')[1]
            return Response(200, json=[fields + ['state', 'county'], ['Travis County, Texas' if f == 'NAME' else '5' for f in fields] + ['48', county]])

        acs = ACS(year=2022, transport=MockTransport(handler))
        data = acs.get_data('county', variables=['B19013_001'], state='Texas', county='Travis')
        self.assertEqual(list(data['GEOID']), ['48453'])
        self.assertEqual(requests[-1].url.params['for'], 'county:453')
        self.assertEqual(requests[-1].url.params['in'], 'state:48')

        with self.assertRaises(ValueError):
            acs.get_data('county', variables=['B19013_001'], county='Travis')

    def test_invalid_request(self):
        with self.assertRaises(ValueError):
            self.acs.get_data('state')
        with self.assertRaises(ValueError):
            self.acs.get_data('state', variables=['B19013_001'], output='long')
        with self.assertRaises(UnknownGeography):
            self.acs.get_data('neighborhood', variables=['B19013_001'])

    def test_empty_result(self):
        acs = ACS(year=2022, transport=MockTransport(lambda request: Response(204)))
        with self.assertRaises(DatasetError):
            acs.get_data('state', variables=['B19013_001'])

    def test_decennial(self):
        decennial = Decennial(year=2020, transport=MockTransport(state_handler(self.requests)))
        data = decennial.get_data('state', variables=['P1_003N'], summary_var='P1_001N')
        self.assertEqual(list(data.columns), ['GEOID', 'NAME', 'variable', 'value', 'summary_value'])
        self.assertEqual(data.loc[data['GEOID'] == '06', 'value'].iloc[0], 16296122)
        self.assertEqual(data.loc[data['GEOID'] == '06', 'summary_value'].iloc[0], 39538223)

        wide = decennial.get_data('state', variables={'white': 'P1_003N'}, output='wide')
        self.assertEqual(list(wide.columns), ['GEOID', 'NAME', 'white'])

    def test_estimates(self):
        estimates = Estimates(year=2019, transport=MockTransport(state_handler(self.requests)))
        data = estimates.get_data('state')
        self.assertEqual(sorted(data['variable'].unique()), ['DENSITY', 'POP'])
        self.assertEqual(self.requests[0].url.path, '/data/2019/pep/population')
        self.assertAlmostEqual(data.loc[(data['GEOID'] == '48') & (data['variable'] == 'DENSITY'), 'value'].iloc[0], 111.0)


class GetDataTest(TestCase):
    def setUp(self) -> None:
        self.tmp = TemporaryDirectory()
        self.env = patch.dict(environ, {CACHE_DIR_ENV: self.tmp.name})
        self.env.start()
        self.requests = []
        self.transport = MockTransport(state_handler(self.requests))
        self.downloads = []

    def tearDown(self) -> None:
        self.env.stop()
        self.tmp.cleanup()

    def boundary_transport(self, boundaries: GeoDataFrame) -> MockTransport:
        def handler(request):
            self.downloads.append(str(request.url))
            name = path.basename(request.url.path)[:-len('.zip')]
            return Response(200, content=zipped_shapefile(boundaries, name))
        return MockTransport(handler)

    def test_get_acs_infers_product(self):
        data = get_acs('state', variables=['S1701_C01_001'], transport=self.transport)
        self.assertEqual(self.requests[0].url.path, '/data/2022/acs/acs5/subject')
        self.assertEqual(self.requests[0].url.params['get'], 'NAME,S1701_C01_001E,S1701_C01_001M')
        self.assertEqual(list(data['variable'].unique()), ['S1701_C01_001'])

    def test_get_acs_geometry(self):
        states = GeoDataFrame({
            'STATEFP': ['06', '48'],
            'GEOID': ['06', '48'],
            'NAME': ['California', 'Texas'],
        }, geometry=[box(0, 0, 1, 1), box(2, 0, 3, 1)], crs='EPSG:4269')
        data = get_acs('state', variables=['B19013_001'], geometry=True, transport=self.transport, boundary_transport=self.boundary_transport(states))
        self.assertIsInstance(data, GeoDataFrame)
        self.assertEqual(self.downloads, ['https://www2.census.gov/geo/tiger/GENZ2022/shp/cb_2022_us_state_500k.zip'])
        self.assertEqual(sorted(data['GEOID']), ['06', '48'])
        self.assertEqual(data.loc[data['GEOID'] == '48', 'estimate'].iloc[0], 73035)
        self.assertEqual(data.loc[data['GEOID'] == '48', 'NAME'].iloc[0], 'Texas')
        self.assertTrue(data.geometry.notna().all())

    def test_get_decennial_2010_geometry(self):
        states = GeoDataFrame({
            'GEO_ID': ['0400000US06', '0400000US48'],
            'STATE': ['06', '48'],
            'NAME': ['California', 'Texas'],
        }, geometry=[box(0, 0, 1, 1), box(2, 0, 3, 1)], crs='EPSG:4269')
        data = get_decennial('state', variables=['P001001'], year=2010, geometry=True, transport=self.transport, boundary_transport=self.boundary_transport(states))
        self.assertEqual(self.requests[0].url.path, '/data/2010/dec/sf1')
        self.assertEqual(self.downloads, ['https://www2.census.gov/geo/tiger/GENZ2010/gz_2010_us_040_00_500k.zip'])
        self.assertEqual(sorted(data['GEOID']), ['06', '48'])
        self.assertEqual(data.loc[data['GEOID'] == '06', 'value'].iloc[0], 37253956)

    def test_get_decennial_2000_geometry(self):
        states = GeoDataFrame({
            'STATEFP00': ['06', '48'],
            'NAME00': ['California', 'Texas'],
        }, geometry=[box(0, 0, 1, 1), box(2, 0, 3, 1)], crs='EPSG:4269')
        data = get_decennial('state', variables=['P001001'], year=2000, state='TX', geometry=True, transport=self.transport, boundary_transport=self.boundary_transport(states))
        self.assertEqual(self.downloads, ['https://www2.census.gov/geo/tiger/TIGER2010/STATE/2000/tl_2010_us_state00.zip'])
        self.assertEqual(list(data['GEOID']), ['48'])

        with self.assertRaises(ValueError):
            get_decennial('state', variables=['P001001'], year=2000, geometry=True, cb=True, transport=self.transport)

    def test_get_estimates(self):
        data = get_estimates('state', state='CA', transport=self.transport)
        self.assertEqual(self.requests[0].url.path, '/data/2019/pep/population')
        self.assertEqual(self.requests[0].url.params['for'], 'state:06')
        self.assertEqual(sorted(data['variable'].unique()), ['DENSITY', 'POP'])

    def test_clients_are_closed(self):
        before = active_count()
        for _ in range(5):
            get_estimates('state', transport=self.transport)
        self.assertEqual(active_count(), before)


if __name__ == "__main__":
    main()
