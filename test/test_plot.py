import matplotlib
matplotlib.use('Agg')

from unittest import TestCase, main
import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from pandas import DataFrame
from geopandas import GeoDataFrame
from shapely.geometry import box

from censalyze.plot import moe_plot, choropleth


class PlotTest(TestCase):
    def tearDown(self) -> None:
        plt.close('all')

    def test_moe_plot(self):
        data = DataFrame({
            'NAME': ['Travis County', 'Harris County', 'Dallas County'],
            'estimate': [92731, 70789, 70732],
            'moe': [1129, 515, 810],
        })
        ax = moe_plot(data)
        self.assertIsInstance(ax, Axes)
        self.assertEqual([t.get_text() for t in ax.get_yticklabels()], ['Dallas County', 'Harris County', 'Travis County'])

        _, existing = plt.subplots()
        self.assertIs(moe_plot(data, ax=existing), existing)

    def test_choropleth(self):
        data = GeoDataFrame({'GEOID': ['06', '48'], 'estimate': [1.0, 2.0]}, geometry=[box(0, 0, 1, 1), box(1, 0, 2, 1)], crs='EPSG:4269')
        ax = choropleth(data, 'estimate')
        self.assertIsInstance(ax, Axes)
        self.assertEqual(len(ax.collections), 1)


if __name__ == "__main__":
    main()
