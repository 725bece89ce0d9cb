# thin http client for the storefront api
# nothing here raises on network trouble: reads come back as None ("unknown, keep what you
# have", never "empty") and writes as a failed SyncResult. status None means the server was
# not reached at all.

import json
import logging
from http.cookiejar import CookieJar
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import HTTPCookieProcessor, Request, build_opener

logger = logging.getLogger(__name__)

HEALTH_TIMEOUT = 3


class SyncResult:
    def __init__(self, success, message=None, status=None, data=None):
        self.success = success
        self.message = message
        self.status = status
        self.data = data

    def __repr__(self):
        return f'<SyncResult success={self.success} status={self.status} message={self.message!r}>'

    @property
    def reachable(self):
        return self.status is not None

    @property
    def retryable(self):
        # unreachable or the server itself failed; a 4xx is a final answer
        return self.status is None or self.status >= 500

    @property
    def rejected(self):
        return not self.success and not self.retryable

    def __bool__(self):
        return self.success


def _decode(raw):
    if not raw:
        return None
    try:
        return json.loads(raw.decode('utf-8'))
    except ValueError:
        logger.warning('response body is not json')
        return None


class RemoteGateway:
    def __init__(self, base_url, opener=None, timeout=None):
        self.base_url = base_url.rstrip('/')
        self.opener = opener or build_opener(HTTPCookieProcessor(CookieJar()))
        self.timeout = timeout
        self.is_admin = False

    def _url(self, path, params=None):
        url = f'{self.base_url}/{path.lstrip("/")}'
        if params:
            url += '?' + urlencode({k: v for k, v in params.items() if v is not None})
        return url

    def _request(self, method, path, payload=None, params=None, timeout=None):
        # returns (status, decoded body); raises URLError or OSError when unreachable
        body = None
        headers = {'Accept': 'application/json'}
        if payload is not None:
            body = json.dumps(payload).encode('utf-8')
            headers['Content-Type'] = 'application/json'
        req = Request(self._url(path, params), data=body, headers=headers, method=method)
        try:
            with self.opener.open(req, timeout=timeout or self.timeout) as resp:
                status, raw = resp.status, resp.read()
        except HTTPError as err:
            status, raw = err.code, err.read()
        return status, _decode(raw)

    def send(self, method, path, payload=None, params=None):
        try:
            status, body = self._request(method, path, payload, params)
        except (URLError, OSError) as err:
            logger.warning('%s %s failed, server unreachable: %s', method, path, err)
            return SyncResult(False, 'Không kết nối được máy chủ.')
        body_dict = body if isinstance(body, dict) else {}
        if status >= 400:
            logger.warning('%s %s answered %s: %s', method, path, status, body_dict.get('message'))
            return SyncResult(False, body_dict.get('message') or f'HTTP {status}', status, body)
        return SyncResult(body_dict.get('success', True), body_dict.get('message'), status, body)

    def _fetch(self, path, params=None):
        result = self.send('GET', path, params=params)
        return result.data if result.success else None

    def fetch_list(self, entity, params=None):
        data = self._fetch(entity, params)
        return data if isinstance(data, list) else None

    def fetch_by_key(self, entity, key):
        data = self._fetch(f'{entity}/{quote(str(key), safe="")}')
        return data if isinstance(data, dict) else None

    def upsert(self, entity, payload, key=None):
        path = entity if key is None else f'{entity}/{quote(str(key), safe="")}'
        return self.send('POST', path, payload)

    def delete(self, entity, item_id):
        return self.send('DELETE', f'{entity}/{quote(str(item_id), safe="")}')

    def post(self, path, payload=None):
        return self.send('POST', path, payload if payload is not None else {})

    def health(self):
        try:
            status, _ = self._request('GET', 'health', timeout=HEALTH_TIMEOUT)
        except (URLError, OSError) as err:
            logger.warning('health check failed: %s', err)
            return False
        return status == 200

    def admin_login(self, username, password):
        result = self.post('admin/login', {'username': username, 'password': password})
        self.is_admin = result.success
        return result

    def admin_logout(self):
        result = self.post('admin/logout')
        self.is_admin = False
        return result
