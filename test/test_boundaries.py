from glob import glob
from io import BytesIO
from os import environ, path
from tempfile import TemporaryDirectory
from unittest import TestCase, main
from unittest.mock import patch
from zipfile import ZipFile
from httpx import MockTransport, Response
from pandas import DataFrame
from geopandas import GeoDataFrame
from shapely.geometry import box

from censalyze.boundaries import boundary_url, get_boundaries, attach_geometry
from censalyze.config import CACHE_DIR_ENV
from censalyze.geography import UnknownGeography


def zipped_shapefile(gdf: GeoDataFrame, name: str) -> bytes:
    with TemporaryDirectory() as tmp:
        gdf.to_file(path.join(tmp, f'{name}.shp'))
        buffer = BytesIO()
        with ZipFile(buffer, 'w') as z:
            for f in glob(path.join(tmp, f'{name}.*')):
                z.write(f, arcname=path.basename(f))
        return buffer.getvalue()


class BoundaryTest(TestCase):
    def setUp(self) -> None:
        self.tmp = TemporaryDirectory()
        self.env = patch.dict(environ, {CACHE_DIR_ENV: self.tmp.name})
        self.env.start()

    def tearDown(self) -> None:
        self.env.stop()
        self.tmp.cleanup()

    def test_cartographic_urls(self):
        self.assertEqual(boundary_url('state', 2022), 'https://www2.census.gov/geo/tiger/GENZ2022/shp/cb_2022_us_state_500k.zip')
        self.assertEqual(boundary_url('county', 2021, resolution='20m'), 'https://www2.census.gov/geo/tiger/GENZ2021/shp/cb_2021_us_county_20m.zip')
        self.assertEqual(boundary_url('tract', 2022, state='48', resolution='5m'), 'https://www2.census.gov/geo/tiger/GENZ2022/shp/cb_2022_48_tract_500k.zip')
        self.assertEqual(boundary_url('us', 2020), 'https://www2.census.gov/geo/tiger/GENZ2020/shp/cb_2020_us_nation_5m.zip')
        self.assertEqual(boundary_url('cbsa', 2022), 'https://www2.census.gov/geo/tiger/GENZ2022/shp/cb_2022_us_cbsa_500k.zip')
        self.assertEqual(boundary_url('zcta', 2020), 'https://www2.census.gov/geo/tiger/GENZ2020/shp/cb_2020_us_zcta520_500k.zip')
        self.assertEqual(boundary_url('zcta', 2019), 'https://www2.census.gov/geo/tiger/GENZ2019/shp/cb_2019_us_zcta510_500k.zip')
        self.assertEqual(boundary_url('puma', 2022, state='06'), 'https://www2.census.gov/geo/tiger/GENZ2022/shp/cb_2022_06_puma20_500k.zip')
        self.assertEqual(boundary_url('congressional district', 2022), 'https://www2.census.gov/geo/tiger/GENZ2022/shp/cb_2022_us_cd118_500k.zip')

    def test_cartographic_2010_urls(self):
        self.assertEqual(boundary_url('county', 2010), 'https://www2.census.gov/geo/tiger/GENZ2010/gz_2010_us_050_00_500k.zip')
        self.assertEqual(boundary_url('state', 2010, resolution='20m'), 'https://www2.census.gov/geo/tiger/GENZ2010/gz_2010_us_040_00_20m.zip')
        self.assertEqual(boundary_url('tract', 2010, state='06', resolution='5m'), 'https://www2.census.gov/geo/tiger/GENZ2010/gz_2010_06_140_00_500k.zip')
        with self.assertRaises(UnknownGeography):
            boundary_url('cbsa', 2010)

    def test_tiger_line_urls(self):
        self.assertEqual(boundary_url('county', 2010, cb=False), 'https://www2.census.gov/geo/tiger/TIGER2010/COUNTY/2010/tl_2010_us_county10.zip')
        self.assertEqual(boundary_url('tract', 2000, state='48', cb=False), 'https://www2.census.gov/geo/tiger/TIGER2010/TRACT/2000/tl_2010_48_tract00.zip')
        self.assertEqual(boundary_url('county', 2012, cb=False), 'https://www2.census.gov/geo/tiger/TIGER2012/COUNTY/tl_2012_us_county.zip')
        self.assertEqual(boundary_url('tract', 2022, state='48', cb=False), 'https://www2.census.gov/geo/tiger/TIGER2022/TRACT/tl_2022_48_tract.zip')

    def test_invalid_urls(self):
        with self.assertRaises(UnknownGeography):
            boundary_url('block', 2022, state='48')
        with self.assertRaises(ValueError):
            boundary_url('tract', 2022)
        with self.assertRaises(ValueError):
            boundary_url('county', 2012)
        with self.assertRaises(ValueError):
            boundary_url('county', 2000)
        with self.assertRaises(ValueError):
            boundary_url('county', 2022, resolution='1m')
        with self.assertRaises(UnknownGeography):
            boundary_url('cbsa', 2022, cb=False)

    def test_get_boundaries(self):
        states = GeoDataFrame({
            'STATEFP': ['06', '48'],
            'GEOID': ['06', '48'],
            'NAME': ['California', 'Texas'],
        }, geometry=[box(0, 0, 1, 1), box(2, 0, 3, 1)], crs='EPSG:4269')
        content = zipped_shapefile(states, 'cb_2022_us_state_500k')

        requests = []

        def handler(request):
            requests.append(request)
            return Response(200, content=content)

        transport = MockTransport(handler)
        boundaries = get_boundaries('state', 2022, transport=transport)
        self.assertEqual(list(boundaries.columns), ['GEOID', 'geometry'])
        self.assertEqual(sorted(boundaries['GEOID']), ['06', '48'])
        self.assertEqual(str(requests[0].url), 'https://www2.census.gov/geo/tiger/GENZ2022/shp/cb_2022_us_state_500k.zip')

        texas = get_boundaries('state', 2022, state='TX', keep_geo_vars=True, transport=transport)
        self.assertEqual(len(requests), 1)
        self.assertEqual(list(texas['NAME']), ['Texas'])

    def test_attach_geometry(self):
        boundaries = GeoDataFrame({'GEOID': ['06', '48', '72']}, geometry=[box(0, 0, 1, 1), box(2, 0, 3, 1), box(4, 0, 5, 1)], crs='EPSG:4269')
        data = DataFrame({'GEOID': ['06', '48', '06', '48', '36'], 'variable': ['a', 'a', 'b', 'b', 'a'], 'estimate': [1, 2, 3, 4, 5]})
        joined = attach_geometry(data, boundaries)
        self.assertIsInstance(joined, GeoDataFrame)
        self.assertEqual(len(joined), 4)
        self.assertEqual(joined.crs, boundaries.crs)
        self.assertNotIn('36', list(joined['GEOID']))

        with self.assertRaises(ValueError):
            attach_geometry(DataFrame({'id': ['06']}), boundaries)


if __name__ == "__main__":
    main()
