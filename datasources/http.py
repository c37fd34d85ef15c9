import threading
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

USER_AGENT = "CraftArchitect/1.0"

_session_local = threading.local()

def _new_session() -> requests.Session:
    s = requests.Session()
    retry = Retry(
        total=2,
        connect=2,
        read=2,
        backoff_factor=0.3,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(pool_connections=10, pool_maxsize=20, max_retries=retry)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    s.headers.update({
        "User-Agent": USER_AGENT,
        "Accept": "application/json",
        "Accept-Encoding": "gzip, deflate",
        "Connection": "keep-alive",
    })
    return s

def get_shared_session() -> requests.Session:
    """Per-thread session; worker threads never share a connection pool."""
    s = getattr(_session_local, "session", None)
    if s is None:
        s = _new_session()
        _session_local.session = s
    return s


class DataSourceError(Exception):
    """Raised when a remote data source cannot be read."""
    pass
