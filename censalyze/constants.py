STATES = [
    ('01', 'AL', 'Alabama'),
    ('02', 'AK', 'Alaska'),
    ('04', 'AZ', 'Arizona'),
    ('05', 'AR', 'Arkansas'),
    ('06', 'CA', 'California'),
    ('08', 'CO', 'Colorado'),
    ('09', 'CT', 'Connecticut'),
    ('10', 'DE', 'Delaware'),
    ('11', 'DC', 'District of Columbia'),
    ('12', 'FL', 'Florida'),
    ('13', 'GA', 'Georgia'),
    ('15', 'HI', 'Hawaii'),
    ('16', 'ID', 'Idaho'),
    ('17', 'IL', 'Illinois'),
    ('18', 'IN', 'Indiana'),
    ('19', 'IA', 'Iowa'),
    ('20', 'KS', 'Kansas'),
    ('21', 'KY', 'Kentucky'),
    ('22', 'LA', 'Louisiana'),
    ('23', 'ME', 'Maine'),
    ('24', 'MD', 'Maryland'),
    ('25', 'MA', 'Massachusetts'),
    ('26', 'MI', 'Michigan'),
    ('27', 'MN', 'Minnesota'),
    ('28', 'MS', 'Mississippi'),
    ('29', 'MO', 'Missouri'),
    ('30', 'MT', 'Montana'),
    ('31', 'NE', 'Nebraska'),
    ('32', 'NV', 'Nevada'),
    ('33', 'NH', 'New Hampshire'),
    ('34', 'NJ', 'New Jersey'),
    ('35', 'NM', 'New Mexico'),
    ('36', 'NY', 'New York'),
    ('37', 'NC', 'North Carolina'),
    ('38', 'ND', 'North Dakota'),
    ('39', 'OH', 'Ohio'),
    ('40', 'OK', 'Oklahoma'),
    ('41', 'OR', 'Oregon'),
    ('42', 'PA', 'Pennsylvania'),
    ('44', 'RI', 'Rhode Island'),
    ('45', 'SC', 'South Carolina'),
    ('46', 'SD', 'South Dakota'),
    ('47', 'TN', 'Tennessee'),
    ('48', 'TX', 'Texas'),
    ('49', 'UT', 'Utah'),
    ('50', 'VT', 'Vermont'),
    ('51', 'VA', 'Virginia'),
    ('53', 'WA', 'Washington'),
    ('54', 'WV', 'West Virginia'),
    ('55', 'WI', 'Wisconsin'),
    ('56', 'WY', 'Wyoming'),
    ('72', 'PR', 'Puerto Rico'),
]

FIPS_TO_ABBR = {fips: abbr for fips, abbr, _ in STATES}
ABBR_TO_FIPS = {abbr: fips for fips, abbr, _ in STATES}
NAME_TO_FIPS = {name.lower(): fips for fips, _, name in STATES}
FIPS_TO_NAME = {fips: name for fips, _, name in STATES}

# Census Data API annotation sentinels; see
# https://www.census.gov/data/developers/data-sets/acs-1year/notes-on-acs-estimate-and-annotation-values.html
BAD_VALUES = [-111111111, -222222222, -333333333, -555555555, -666666666, -888888888, -999999999]

MOE_Z = {90: 1.645, 95: 1.96, 99: 2.576}

GEOGRAPHY_ALIASES = {
    'us': 'us',
    'nation': 'us',
    'region': 'region',
    'division': 'division',
    'state': 'state',
    'county': 'county',
    'county subdivision': 'county subdivision',
    'tract': 'tract',
    'block group': 'block group',
    'block': 'block',
    'place': 'place',
    'cbsa': 'metropolitan statistical area/micropolitan statistical area',
    'metropolitan statistical area/micropolitan statistical area': 'metropolitan statistical area/micropolitan statistical area',
    'csa': 'combined statistical area',
    'combined statistical area': 'combined statistical area',
    'congressional district': 'congressional district',
    'zcta': 'zip code tabulation area',
    'zip code tabulation area': 'zip code tabulation area',
    'puma': 'public use microdata area',
    'public use microdata area': 'public use microdata area',
    'school district (unified)': 'school district (unified)',
}

# Hierarchies mirror the entries of a dataset's geography.json. Parents listed
# in 'wildcard' may be requested with '*'.
GEOGRAPHY_HIERARCHIES = [
    {'name': 'us', 'geoLevelDisplay': '010'},
    {'name': 'region', 'geoLevelDisplay': '020'},
    {'name': 'division', 'geoLevelDisplay': '030'},
    {'name': 'state', 'geoLevelDisplay': '040'},
    {'name': 'county', 'geoLevelDisplay': '050', 'requires': ['state'], 'wildcard': ['state']},
    {'name': 'county subdivision', 'geoLevelDisplay': '060', 'requires': ['state', 'county'], 'wildcard': ['county']},
    {'name': 'tract', 'geoLevelDisplay': '140', 'requires': ['state', 'county'], 'wildcard': ['county']},
    {'name': 'block group', 'geoLevelDisplay': '150', 'requires': ['state', 'county', 'tract'], 'wildcard': ['county', 'tract']},
    {'name': 'block', 'geoLevelDisplay': '100', 'requires': ['state', 'county', 'tract'], 'wildcard': ['tract']},
    {'name': 'place', 'geoLevelDisplay': '160', 'requires': ['state'], 'wildcard': ['state']},
    {'name': 'metropolitan statistical area/micropolitan statistical area', 'geoLevelDisplay': '310'},
    {'name': 'combined statistical area', 'geoLevelDisplay': '330'},
    {'name': 'public use microdata area', 'geoLevelDisplay': '795', 'requires': ['state'], 'wildcard': ['state']},
    {'name': 'congressional district', 'geoLevelDisplay': '500', 'requires': ['state'], 'wildcard': ['state']},
    {'name': 'school district (unified)', 'geoLevelDisplay': '970', 'requires': ['state']},
    {'name': 'zip code tabulation area', 'geoLevelDisplay': '860'},
]

# Cartographic boundary layer names, keyed by API geography name. 'national'
# layers ship as a single US file; the rest ship per state.
BOUNDARY_LAYERS = {
    'us': ('nation', True),
    'region': ('region', True),
    'division': ('division', True),
    'state': ('state', True),
    'county': ('county', True),
    'county subdivision': ('cousub', False),
    'tract': ('tract', False),
    'block group': ('bg', False),
    'place': ('place', False),
    'metropolitan statistical area/micropolitan statistical area': ('cbsa', True),
    'combined statistical area': ('csa', True),
    'congressional district': ('cd', True),
    'zip code tabulation area': ('zcta5', True),
    'public use microdata area': ('puma', False),
}

TIGER_LINE_DIRECTORIES = {
    'state': 'STATE',
    'county': 'COUNTY',
    'county subdivision': 'COUSUB',
    'tract': 'TRACT',
    'block group': 'BG',
    'place': 'PLACE',
}

# Summary levels of the 2010 cartographic boundary files (gz_2010_<scope>_<sumlev>_00_<res>.zip)
GENZ2010_SUMMARY_LEVELS = {
    'state': '040',
    'county': '050',
    'county subdivision': '060',
    'tract': '140',
    'block group': '150',
    'place': '160',
    'zip code tabulation area': '860',
}

# Decennial vintages published under TIGER2010 (TIGER2010/<DIR>/<year>/tl_2010_<scope>_<layer><yy>.zip)
TIGER2010_VINTAGES = (2000, 2010)

CONGRESS_BY_YEAR = {
    2013: 113, 2014: 114, 2015: 114, 2016: 115, 2017: 115, 2018: 116,
    2019: 116, 2020: 116, 2021: 116, 2022: 118, 2023: 118, 2024: 119,
}

PUMS_ID_VARIABLES = ['SERIALNO', 'SPORDER', 'WGTP', 'PWGTP', 'ST']
PUMS_PERSON_REP_WEIGHTS = [f'PWGTP{i}' for i in range(1, 81)]
PUMS_HOUSING_REP_WEIGHTS = [f'WGTP{i}' for i in range(1, 81)]

ESTIMATES_VARIABLES = {
    'population': ['POP', 'DENSITY'],
    'components': ['BIRTHS', 'DEATHS', 'DOMESTICMIG', 'INTERNATIONALMIG', 'NATURALINC', 'RBIRTH', 'RDEATH', 'RDOMESTICMIG', 'RINTERNATIONALMIG', 'RNATURALINC'],
    'housing': ['HUEST'],
}
