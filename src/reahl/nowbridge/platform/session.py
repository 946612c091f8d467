import logging
import re
import time

import httpx

from reahl.nowbridge import __version__


USER_AGENT = 'reahl-nowbridge/%s' % __version__
NAVIGATION_PATH = '/navpage.do'
user_token_pattern = re.compile(r"""var\s+g_ck\s*=\s*['"]([^'"]+)['"]""")


class DomainException(Exception):
    pass


class SessionEstablishmentFailed(DomainException):
    pass


class PlatformSession:
    def __init__(
        self,
        binding,
        cookies=None,
        established_at=None,
        user_token=None,
        transport=None,
    ):
        self.binding = binding
        self.cookies = dict(cookies or {})
        self.established_at = established_at
        self.user_token = user_token
        self.transport = transport

    @property
    def has_cookies(self):
        return bool(self.cookies)

    def headers(self):
        headers = {
            'Accept': 'application/json',
            'User-Agent': USER_AGENT,
        }
        if self.user_token:
            headers['X-UserToken'] = self.user_token
        return headers

    def client(self, timeout_seconds):
        return httpx.AsyncClient(
            base_url=self.binding.base_url,
            auth=httpx.BasicAuth(self.binding.user_name, self.binding.password),
            cookies=self.cookies,
            headers=self.headers(),
            timeout=timeout_seconds,
            transport=self.transport,
        )


class SessionManager:
    def __init__(self, transport=None, timeout_seconds=10.0):
        self.transport = transport
        self.timeout_seconds = timeout_seconds

    def bare(self, binding):
        return PlatformSession(binding, transport=self.transport)

    async def establish(self, binding):
        logging.getLogger(__name__).debug(
            'Establishing UI session on %s as %s',
            binding.name,
            binding.user_name,
        )
        try:
            async with self.bare(binding).client(self.timeout_seconds) as client:
                response = await client.get(
                    NAVIGATION_PATH,
                    headers={'Accept': 'text/html'},
                    follow_redirects=True,
                )
                cookies = {cookie.name: cookie.value for cookie in client.cookies.jar}
        except httpx.HTTPError as error:
            raise SessionEstablishmentFailed(
                'Could not establish a session on %s: %s' % (binding.name, error)
            ) from error
        if not response.is_success:
            raise SessionEstablishmentFailed(
                'Could not establish a session on %s: HTTP %s'
                % (binding.name, response.status_code)
            )
        return PlatformSession(
            binding,
            cookies=cookies,
            established_at=time.time(),
            user_token=user_token_in(response.text),
            transport=self.transport,
        )


def user_token_in(page_text):
    match = user_token_pattern.search(page_text or '')
    if match is None:
        return None
    return match.group(1)
