"""HTTP client for a remote outline document server."""

import json
from typing import Any

import requests
from loguru import logger

from outline_engine.config import API_TOKEN_FILES


class OutlineApi:
    """JSON-over-POST transport: ``{base_url}/{path}`` with the token in the body."""

    def __init__(
        self, base_url: str, *, token: str | None = None, timeout: float = 30.0
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.sess = requests.Session()

        token_name = "argument"
        if token is None:
            for token_path in API_TOKEN_FILES:
                try:
                    token = token_path.read_text(encoding="utf-8").strip()
                    token_name = str(token_path)
                    break
                except FileNotFoundError:
                    pass
            else:
                msg = f"Cannot find outline token file, was looking at {API_TOKEN_FILES!r}"
                raise RuntimeError(msg)
        self.api_token = token

        logger.debug("API ready: {} (token from {!r})", self.base_url, token_name)

    def call(self, path: str, args: dict[str, Any]) -> dict[str, Any]:
        """Invoke an API command, return json."""
        logger.debug("Making request: {!r} {}", path, repr(args)[:32])

        r = self.sess.post(
            f"{self.base_url}/{path}",
            json.dumps({"token": self.api_token, **args}),
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        r.raise_for_status()
        rv: dict[str, Any] = r.json()
        if rv.get("_code") != "Ok" or rv.get("_msg"):
            msg = f"API call failed: ({path!r}, {args!r}) -> ({rv.get('_code')!r}, {rv.get('_msg')!r})"
            raise RuntimeError(msg)
        return rv
