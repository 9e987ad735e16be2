import json
import time
import logging
import requests
from enum import Enum
from dataclasses import dataclass
from urllib3.exceptions import HTTPError, ReadTimeoutError


DEFAULT_TIMEOUT = 10.0  # Seconds
CHUNK_SIZE = 8192

logger = logging.getLogger(__name__)


class RequestMethod(Enum):
    # RequestMethod {{{
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"

    def __str__(self) -> str:
        return self.value

    def next(self) -> "RequestMethod":
        members = list(RequestMethod)
        return members[(members.index(self) + 1) % len(members)]

    @classmethod
    def from_text(cls, text: str) -> "RequestMethod":
        return (cls)(text.strip().upper())
    # }}}


@dataclass(frozen=True)
class CompletedRequest:
    # CompletedRequest {{{
    url: str
    method: RequestMethod
    response_body: str

    def label(self) -> str:
        return f"{self.method.value} | {self.url}"
    # }}}


class RequestError(Exception):
    """
    Base of every recoverable request failure. The
    message is what the response pane shows.
    """


class NetworkError(RequestError):
    # NetworkError {{{
    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Could not reach {url}: {reason}")
    # }}}


class RequestTimeout(RequestError):
    # RequestTimeout {{{
    def __init__(self, url: str, timeout: float):
        self.url = url
        self.timeout = timeout
        super().__init__(f"No response from {url} after {timeout}s")
    # }}}


class NonSuccessStatus(RequestError):
    # NonSuccessStatus {{{
    def __init__(self, code: int, reason: str = ""):
        self.code = code
        self.reason = reason
        super().__init__(f"Status code -> {code} {reason}".rstrip())
    # }}}


class BodyParseError(RequestError):
    # BodyParseError {{{
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Response body is not valid JSON: {detail}")
    # }}}


class UnsupportedMethod(RequestError):
    # UnsupportedMethod {{{
    def __init__(self, method: RequestMethod):
        self.method = method
        super().__init__(f"{method.value} requests are not supported yet")
    # }}}


def fetch(url: str, method: RequestMethod = RequestMethod.GET,
          timeout: float = DEFAULT_TIMEOUT) -> str:
    """
    Issues the request and returns the pretty printed
    JSON body. Every failure surfaces as a RequestError.

    The timeout bounds every socket read and the request
    as a whole, so a server trickling bytes is cut off too.
    """
    # fetch {{{
    if method != RequestMethod.GET:
        raise UnsupportedMethod(method)

    logger.info("%s %s", method.value, url)
    deadline = time.monotonic() + timeout
    try:
        with requests.get(url, timeout=timeout, stream=True) as response:
            if not 200 <= response.status_code < 300:
                raise NonSuccessStatus(response.status_code,
                                       response.reason or "")
            body = _read_body(response, url, timeout, deadline)
    except (requests.Timeout, ReadTimeoutError) as exception:
        raise RequestTimeout(url, timeout) from exception
    except requests.ConnectionError as exception:
        # requests wraps read timeouts hit after the headers arrived
        if _is_read_timeout(exception):
            raise RequestTimeout(url, timeout) from exception
        raise NetworkError(url, str(exception)) from exception
    except (requests.RequestException, HTTPError) as exception:
        raise NetworkError(url, str(exception)) from exception

    logger.debug("%s returned %s (%d bytes)", url,
                 response.status_code, len(body))
    return pretty_print(parse(body))
    # }}}


def _read_body(response: requests.Response, url: str, timeout: float,
               deadline: float) -> bytes:
    """
    Reads whatever has arrived, chunk by chunk, checking
    the overall deadline between reads.
    """
    # _read_body {{{
    chunks = []
    while True:
        if time.monotonic() > deadline:
            raise RequestTimeout(url, timeout)
        chunk = response.raw.read1(CHUNK_SIZE, decode_content=True)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)
    # }}}


def _is_read_timeout(exception: Exception) -> bool:
    # _is_read_timeout {{{
    causes = [exception.__cause__, exception.__context__, *exception.args]
    return any(isinstance(cause, ReadTimeoutError) for cause in causes)
    # }}}


def parse(body) -> object:
    # parse {{{
    try:
        return json.loads(body)
    except ValueError as exception:
        # UnicodeDecodeError is a ValueError too
        raise BodyParseError(str(exception)) from exception
    except RecursionError as exception:
        raise BodyParseError("nested too deeply") from exception
    # }}}


def pretty_print(value: object) -> str:
    # pretty_print {{{
    try:
        return json.dumps(value, indent=2, ensure_ascii=False)
    except RecursionError as exception:
        raise BodyParseError("nested too deeply") from exception
    # }}}
