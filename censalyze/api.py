import logging
from typing import Dict, List, Tuple, Iterable
from httpx import AsyncClient, Client, Timeout, Response, ConnectTimeout, ConnectError, ReadTimeout, PoolTimeout, BaseTransport, AsyncBaseTransport
from asyncio import new_event_loop, set_event_loop, run_coroutine_threadsafe, sleep, gather
from os import path, remove, replace
from threading import Thread

logger = logging.getLogger(__name__)

CENSUS_API_ROOT = 'https://api.census.gov/data/'


class CensusAPIKeyError(Exception):
    def __init__(self, message: str = None) -> None:
        if message is None:
            message = 'Looks like you are missing an API key! You can obtain one at https://api.census.gov/data/key_signup.html. You can set it by passing it into the key parameter or with censalyze.census_api_key().'
        super().__init__(message)


class CensusAPIError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        if status_code:
            super().__init__(f'The Census API had an error (status code {status_code}) and returned the following message:\n\n{message}')
        else:
            super().__init__(message)
        self.status_code = status_code
        self.message = message


class AsyncLoopHandler(Thread):
    """
    Class to handle asynchronous requests. Useful especially in the case where a user
    is writing code inside an IPython environment.

    Adapted from https://stackoverflow.com/a/66055205/17834461
    """
    def __init__(self):
        super().__init__(daemon=True)
        self.loop = new_event_loop()

    def run(self):
        set_event_loop(self.loop)
        self.loop.run_forever()
        return self.loop


class CensusClient(AsyncClient):
    """
    An object that interfaces with the Census API. Extends the
    :class:`httpx.AsyncClient` class to allow for asynchronous requests.

    Parameters
    ==========
    url_extension : :obj:`str`
        A URL extension to append to ``https://api.census.gov/data/`` for accessing
        data related to a specific :class:`.Dataset`.
    api_key : :obj:`str` = None
        A Census API key. Can be obtained
        `here <https://api.census.gov/data/key_signup.html>`_. Not necessary unless you
        are making a large number of calls.
    retry_limit : :obj:`int` = 2
        How many attempts to make per request. ``None`` retries forever.
    transport : :class:`httpx.AsyncBaseTransport` = None
        An alternative transport, e.g. :class:`httpx.MockTransport`.
    """
    def __init__(self, url_extension: str, api_key: str = None, retry_limit: int = 2, transport: AsyncBaseTransport = None):
        timeout = Timeout(30.0, connect=30.0)
        super().__init__(timeout=timeout, transport=transport)

        self.root = f'{CENSUS_API_ROOT}{url_extension}'
        self.api_key = api_key
        self.chunk_size = 50
        self.retry_limit = retry_limit
        self.retry_wait = 2

        self._loop_handler = AsyncLoopHandler()
        self._loop_handler.start()

    def __enter__(self) -> 'CensusClient':
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        """
        Closes the connection pool and stops the background event loop. The client
        cannot make requests afterwards.
        """
        if not self._loop_handler.is_alive():
            return
        loop = self._loop_handler.loop
        run_coroutine_threadsafe(self.aclose(), loop).result()
        loop.call_soon_threadsafe(loop.stop)
        self._loop_handler.join()
        loop.close()

    def get_sync(self, url: str = '', params: Dict[str, str] = None) -> Response:
        """
        Make a single request to the Census API synchronously.

        Parameters
        ==========
        url : :obj:`str` = ''
            The relative URL to request.
        params : :obj:`dict` of :obj:`str`: :obj:`str`
            Query parameters to supply to the Census API.
        """
        future = run_coroutine_threadsafe(self.get(url=url, params=params), self._loop_handler.loop)
        return future.result()

    def get_many_sync(self, url_params_list: Iterable[Tuple[str, Dict[str, str]]] = ()) -> List[Response]:
        """
        Make more than one request to the Census API synchronously. Note that while
        the requests are still sent asynchronously, the function call itself is
        synchronous. Responses are returned in request order.

        Parameters
        ==========
        url_params_list : array-like of :obj:`tuple` of :obj:`str` and :obj:`dict` of :obj:`str`: :obj:`str`
            An array-like of tuples, where each tuple consists of a URL to request and a
            set of query parameters to supply to the Census API.
        """
        future = run_coroutine_threadsafe(self.get_many(url_params_list=url_params_list), self._loop_handler.loop)
        return future.result()

    async def get(self, url: str = '', params: Dict[str, str] = None) -> Response:
        """
        Make a single request to the Census API asynchronously. Returns responses with
        status 200 or 204 (no rows matched); anything else raises a
        :class:`.CensusAPIError` once the retries are used up. A 404 is not retried.

        Parameters
        ==========
        url : :obj:`str` = ''
            The relative URL to request.
        params : :obj:`dict` of :obj:`str`: :obj:`str`
            Query parameters to supply to the Census API.
        """
        params = dict(params) if params else {}
        if self.api_key is not None:
            params.update({'key': self.api_key})
        url = self.root + url

        response = None
        retry_count = 0
        while self.retry_limit is None or retry_count < self.retry_limit:
            retry_count += 1
            try:
                response = await super().get(url=url, params=params)
            except (ConnectTimeout, ConnectError, ReadTimeout, PoolTimeout) as e:
                logger.debug('Request to %s failed (%s), attempt %d', url, e, retry_count)
                response = None

            if response is None:
                await sleep(self.retry_wait)
                continue

            if response.status_code == 200 or response.status_code == 204:
                return response

            if response.status_code == 404:
                break

            logger.debug('Request to %s returned %d, attempt %d', url, response.status_code, retry_count)

        if response is None:
            raise CensusAPIError(status_code=None, message=f'Unable to reach the Census API at {url}.')
        raise CensusAPIError(status_code=response.status_code, message=response.text)

    async def get_many(self, url_params_list: Iterable[Tuple[str, Dict[str, str]]] = ()) -> List[Response]:
        """
        Make more than one request to the Census API asynchronously.

        Parameters
        ==========
        url_params_list : array-like of :obj:`tuple` of :obj:`str` and :obj:`dict` of :obj:`str`: :obj:`str`
            An array-like of tuples, where each tuple consists of a URL to request and a set
            of query parameters to supply to the Census API.
        """
        url_params_list = list(url_params_list)
        responses = []
        for i in range(0, len(url_params_list), self.chunk_size):
            chunk = url_params_list[i:i + self.chunk_size]
            chunk_responses = await gather(*[self.get(url, params=params) for url, params in chunk])
            responses.extend(chunk_responses)

        return responses


def download(url: str, destination: str, transport: BaseTransport = None) -> str:
    """
    Streams a file (for example, a zipped boundary shapefile) to ``destination``.

    Parameters
    ==========
    url : :obj:`str`
        The full URL of the file.
    destination : :obj:`str`
        The local path to write to.
    transport : :class:`httpx.BaseTransport` = None
        An alternative transport, e.g. :class:`httpx.MockTransport`.
    """
    timeout = Timeout(300.0, connect=30.0)
    partial = destination + '.part'
    logger.info('Downloading %s', url)
    try:
        with Client(timeout=timeout, transport=transport, follow_redirects=True) as client:
            with client.stream('GET', url) as response:
                if response.status_code != 200:
                    response.read()
                    raise CensusAPIError(status_code=response.status_code, message=response.text)
                with open(partial, 'wb') as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
        replace(partial, destination)
    finally:
        if path.exists(partial):
            remove(partial)

    return destination
