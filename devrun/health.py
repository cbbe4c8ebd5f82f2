from __future__ import annotations

import errno

import httpx

from .errors import ProbeError


def _is_connection_refused(exc: BaseException) -> bool:
    """Walk the exception chain looking for ECONNREFUSED.

    httpx wraps the socket error (possibly inside a group of per-address
    attempts), so the refusal can sit a few levels below the ConnectError.
    """
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        e = stack.pop()
        if id(e) in seen:
            continue
        seen.add(id(e))
        if isinstance(e, ConnectionRefusedError):
            return True
        if isinstance(e, OSError) and e.errno == errno.ECONNREFUSED:
            return True
        stack.extend(getattr(e, "exceptions", ()) or ())
        if e.__cause__ is not None:
            stack.append(e.__cause__)
        if e.__context__ is not None:
            stack.append(e.__context__)
    return False


class LivenessChecker:
    """Single-shot probe telling whether a backend already listens at a URL."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout_s: float | None = None):
        self._client = client
        self.timeout_s = timeout_s

    async def is_running(self, url: str) -> bool:
        """Return True on a successful response, False on connection refused.

        Anything else (DNS failure, malformed URL, error status, timeout)
        raises ProbeError.
        """
        try:
            if self._client is not None:
                resp = await self._client.get(url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_s, follow_redirects=False) as client:
                    resp = await client.get(url)
        except httpx.ConnectError as e:
            if _is_connection_refused(e):
                return False
            raise ProbeError(f"Probe of {url} failed: {e}") from e
        except Exception as e:
            raise ProbeError(f"Probe of {url} failed: {type(e).__name__}: {e}") from e

        if resp.status_code >= 400:
            raise ProbeError(f"Probe of {url} failed: HTTP {resp.status_code}")
        return True
