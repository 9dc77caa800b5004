"""
Configuration for censalyze: the Census API key and the on-disk locations used
for installed settings and cached downloads.
"""
import json
import logging
from os import environ, makedirs, path
from typing import Optional

from censalyze.api import CensusAPIKeyError

logger = logging.getLogger(__name__)

API_KEY_ENV = 'CENSUS_API_KEY'
CONFIG_DIR_ENV = 'CENSALYZE_CONFIG_DIR'
CACHE_DIR_ENV = 'CENSALYZE_CACHE_DIR'


def config_dir() -> str:
    """
    The directory holding ``config.json``. Defaults to ``~/.config/censalyze`` and
    can be overridden with the ``CENSALYZE_CONFIG_DIR`` environment variable.
    """
    return environ.get(CONFIG_DIR_ENV, path.join(path.expanduser('~'), '.config', 'censalyze'))


def cache_dir() -> str:
    """
    The directory used to cache boundary files and variable tables. Defaults to
    ``~/.cache/censalyze`` and can be overridden with the ``CENSALYZE_CACHE_DIR``
    environment variable. Created if it does not exist.
    """
    directory = environ.get(CACHE_DIR_ENV, path.join(path.expanduser('~'), '.cache', 'censalyze'))
    makedirs(directory, exist_ok=True)
    return directory


def _config_path() -> str:
    return path.join(config_dir(), 'config.json')


def _read_config() -> dict:
    config_path = _config_path()
    if not path.exists(config_path):
        return {}
    with open(config_path) as f:
        return json.load(f)


def census_api_key(key: str, install: bool = False, overwrite: bool = False) -> str:
    """
    Sets a Census API key for the current process and, optionally, installs it for
    future sessions.

    Parameters
    ==========
    key : :obj:`str`
        A Census API key. Can be obtained
        `here <https://api.census.gov/data/key_signup.html>`_.
    install : :obj:`bool` = False
        If ``True``, writes the key to ``config.json`` inside :func:`config_dir`.
    overwrite : :obj:`bool` = False
        Must be ``True`` to replace a key that is already installed.
    """
    environ[API_KEY_ENV] = key

    if install:
        config = _read_config()
        if 'api_key' in config and not overwrite:
            raise CensusAPIKeyError('A Census API key is already installed. Use overwrite=True to replace it.')
        config['api_key'] = key
        makedirs(config_dir(), exist_ok=True)
        with open(_config_path(), 'w') as f:
            json.dump(config, f)
        logger.info('Installed Census API key to %s', _config_path())

    return key


def get_api_key(key: Optional[str] = None) -> Optional[str]:
    """
    Resolves the Census API key: an explicit ``key`` wins, then the
    ``CENSUS_API_KEY`` environment variable, then the installed key. Returns
    ``None`` if no key is available; the Census API accepts a small number of
    keyless requests.
    """
    if key:
        return key
    if environ.get(API_KEY_ENV):
        return environ[API_KEY_ENV]
    return _read_config().get('api_key')
