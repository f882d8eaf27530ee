"""Customer directory: read-only existence checks."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Protocol

import httpx
import yaml

from ..config import DirectoryConfig
from ..errors import UpstreamUnavailable


class CustomerDirectory(Protocol):
    async def exists(self, customer_id: int) -> bool: ...

    async def close(self) -> None: ...


class StaticCustomerDirectory:
    def __init__(self, path: Path | None = None, customers: Iterable[int] | None = None) -> None:
        self._path = path
        self._customers: set[int] = set(customers or ())
        if customers is None and path is not None:
            self.reload()

    def reload(self) -> None:
        if self._path is None:
            return
        data = yaml.safe_load(self._path.read_text()) or {}
        self._customers = {int(value) for value in data.get("customers", [])}

    async def exists(self, customer_id: int) -> bool:
        return customer_id in self._customers

    async def close(self) -> None:
        return None


class HttpCustomerDirectory:
    def __init__(self, *, base_url: str, timeout_ms: int = 500) -> None:
        if not base_url:
            raise ValueError("customer directory base_url missing")
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"))
        self._timeout = timeout_ms / 1000

    async def exists(self, customer_id: int) -> bool:
        try:
            response = await self._client.get(f"/customers/{customer_id}", timeout=self._timeout)
            if response.status_code == httpx.codes.NOT_FOUND:
                return False
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(
                f"customer lookup for {customer_id} failed: {exc}"
            ) from exc
        return True

    async def close(self) -> None:
        await self._client.aclose()


def build_customer_directory(config: DirectoryConfig) -> CustomerDirectory:
    options = dict(config.options)
    if config.backend == "static":
        return StaticCustomerDirectory(Path(options["path"]))
    if config.backend == "http":
        return HttpCustomerDirectory(**options)
    raise ValueError(f"unknown customer directory backend {config.backend}")
