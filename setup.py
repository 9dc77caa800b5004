from setuptools import setup, find_packages

setup(
    name="censalyze",
    version="0.1.0",
    description="Retrieve, wrangle, map and model U.S. Census Bureau data: ACS and decennial tables, boundaries, margins of error, and PUMS microdata with replicate weights.",
    long_description_content_type="text/markdown",
    author="censalyze developers",
    packages=find_packages(exclude=["test", "test.*"]),
    python_requires=">=3.8",
    install_requires=[
        "httpx",
        "pandas",
        "numpy",
        "scipy",
        "geopandas",
        "shapely>=2.0",
        "thefuzz",
        "matplotlib",
    ],
)
