"""Remote file download over HTTP."""

import logging
import tempfile
from pathlib import Path

import requests

from ..errors import TransportError

logger = logging.getLogger(__name__)


class RequestsFetcher:
    """Stream a URL into a temporary file using a shared requests session."""

    def __init__(
        self,
        timeout: float = 30.0,
        session: requests.Session | None = None,
        temp_dir: Path | None = None,
    ):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.temp_dir = temp_dir

    def fetch(self, url: str) -> Path:
        """
        Download url to a temporary file; the caller removes it.

        Raises:
            TransportError: On any HTTP or network failure
        """
        fd, name = tempfile.mkstemp(prefix="mediarecon-", dir=self.temp_dir)
        path = Path(name)
        try:
            with open(fd, "wb") as f:
                resp = self.session.get(url, timeout=self.timeout, stream=True)
                try:
                    resp.raise_for_status()
                    for chunk in resp.iter_content(chunk_size=65536):
                        if chunk:
                            f.write(chunk)
                finally:
                    resp.close()
        except requests.RequestException as exc:
            path.unlink(missing_ok=True)
            raise TransportError(f"Failed to fetch {url}: {exc}") from exc
        except OSError as exc:
            path.unlink(missing_ok=True)
            raise TransportError(f"Cannot write download for {url}: {exc}") from exc

        logger.debug("Fetched %s into %s", url, path)
        return path
