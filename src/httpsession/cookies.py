"""Netscape-format cookie persistence for shared session state."""

from __future__ import annotations

import logging
from http.cookiejar import LoadError, MozillaCookieJar
from pathlib import Path
from typing import Union

__all__ = ["load_cookie_jar", "save_cookie_jar"]

logger = logging.getLogger(__name__)


def load_cookie_jar(path: Union[str, Path]) -> MozillaCookieJar:
    """Return a cookie jar bound to *path*, pre-loaded when the file exists.

    Session cookies are loaded as well, matching what :func:`save_cookie_jar`
    writes. An unreadable or corrupt file is logged and replaced by an empty jar
    so a bad file never blocks a request.
    """
    path = Path(path)
    jar = MozillaCookieJar(str(path))
    if path.is_file():
        try:
            jar.load(ignore_discard=True, ignore_expires=False)
        except (LoadError, OSError) as exc:
            logger.warning(
                "Ignoring unreadable cookie jar",
                extra={"cookie_jar": str(path), "error": str(exc)},
            )
            jar.clear()
        else:
            logger.debug(
                "Cookie jar loaded", extra={"cookie_jar": str(path), "cookies": len(jar)}
            )
    return jar


def save_cookie_jar(jar: MozillaCookieJar) -> None:
    """Write *jar* back to its file, creating the parent directory if needed."""

    if jar.filename is None:
        return
    path = Path(jar.filename)
    path.parent.mkdir(parents=True, exist_ok=True)
    jar.save(ignore_discard=True, ignore_expires=False)
    logger.debug("Cookie jar saved", extra={"cookie_jar": str(path), "cookies": len(jar)})
