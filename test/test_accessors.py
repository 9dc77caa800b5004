from math import sqrt
from unittest import TestCase, main
from pandas import DataFrame

import censalyze.census_accessors
from censalyze.moe import moe_prop


class AccessorTest(TestCase):
    def setUp(self) -> None:
        self.tidy = DataFrame({
            'GEOID': ['48001', '48001', '48003', '48003'],
            'NAME': ['Anderson County, Texas', 'Anderson County, Texas', 'Andrews County, Texas', 'Andrews County, Texas'],
            'variable': ['poverty', 'total', 'poverty', 'total'],
            'estimate': [8000, 50000, 2000, 18000],
            'moe': [900, 100, 500, 50],
        })

    def test_to_wide(self):
        wide = self.tidy.census.to_wide()
        self.assertEqual(list(wide.columns), ['GEOID', 'NAME', 'povertyE', 'povertyM', 'totalE', 'totalM'])
        self.assertEqual(list(wide['povertyE']), [8000, 2000])

        decennial = DataFrame({'GEOID': ['06', '06'], 'NAME': ['California'] * 2, 'variable': ['P1_001N', 'P1_003N'], 'value': [100, 40]})
        self.assertEqual(list(decennial.census.to_wide().columns), ['GEOID', 'NAME', 'P1_001N', 'P1_003N'])

    def test_to_tidy(self):
        tidy = self.tidy.census.to_wide().census.to_tidy()
        self.assertEqual(list(tidy.columns), ['GEOID', 'NAME', 'variable', 'estimate', 'moe'])
        self.assertEqual(len(tidy), 4)
        self.assertEqual(list(tidy['variable']), ['poverty', 'total', 'poverty', 'total'])

        with self.assertRaises(ValueError):
            DataFrame({'GEOID': ['06'], 'total': [1]}).census.to_tidy()

    def test_summarize(self):
        self.tidy['state'] = '48'
        summary = self.tidy.census.summarize(by=['state', 'variable'])
        self.assertEqual(list(summary.columns), ['state', 'variable', 'estimate', 'moe'])
        poverty = summary[summary['variable'] == 'poverty']
        self.assertEqual(poverty['estimate'].iloc[0], 10000)
        self.assertAlmostEqual(poverty['moe'].iloc[0], sqrt(900 ** 2 + 500 ** 2))

    def test_derive_prop(self):
        wide = self.tidy.census.to_wide()
        derived = wide.census.derive_prop('pct_poverty', num='poverty', denom='total')
        self.assertNotIn('pct_povertyE', wide.columns)
        self.assertAlmostEqual(derived['pct_povertyE'].iloc[0], 0.16)
        self.assertAlmostEqual(derived['pct_povertyM'].iloc[0], moe_prop(8000, 50000, 900, 100))

        ratio = wide.census.derive_ratio('ratio', num='poverty', denom='total')
        self.assertAlmostEqual(ratio['ratioM'].iloc[1], sqrt(500 ** 2 + (2000 / 18000) ** 2 * 50 ** 2) / 18000)


if __name__ == "__main__":
    main()
