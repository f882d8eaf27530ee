"""Catalog gateway: read-only product master data."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

import httpx
import yaml

from ..config import DirectoryConfig
from ..errors import UpstreamUnavailable
from ..listings.models import Product


class CatalogGateway(Protocol):
    async def get_product(self, item_id: int) -> Product | None: ...

    async def close(self) -> None: ...


class StaticCatalog:
    """Catalog backed by a YAML file with a ``products:`` list."""

    def __init__(self, path: Path | None = None, products: list[Product] | None = None) -> None:
        self._path = path
        self._products: dict[int, Product] = {}
        if products is not None:
            self._products = {product.item_id: product for product in products}
        elif path is not None:
            self.reload()

    def reload(self) -> None:
        if self._path is None:
            return
        data = yaml.safe_load(self._path.read_text()) or {}
        products = {}
        for item in data.get("products", []):
            product = Product.from_record(item)
            products[product.item_id] = product
        self._products = products

    def all(self) -> list[Product]:
        return list(self._products.values())

    async def get_product(self, item_id: int) -> Product | None:
        return self._products.get(item_id)

    async def close(self) -> None:
        return None


class HttpCatalog:
    def __init__(self, *, base_url: str, timeout_ms: int = 500) -> None:
        if not base_url:
            raise ValueError("catalog base_url missing")
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"))
        self._timeout = timeout_ms / 1000

    async def get_product(self, item_id: int) -> Product | None:
        try:
            response = await self._client.get(f"/products/{item_id}", timeout=self._timeout)
            if response.status_code == httpx.codes.NOT_FOUND:
                return None
            response.raise_for_status()
            data: dict[str, Any] = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamUnavailable(f"catalog lookup for item {item_id} failed: {exc}") from exc
        data.setdefault("item_id", item_id)
        return Product.from_record(data)

    async def close(self) -> None:
        await self._client.aclose()


def build_catalog(config: DirectoryConfig) -> CatalogGateway:
    options = dict(config.options)
    if config.backend == "static":
        return StaticCatalog(Path(options["path"]))
    if config.backend == "http":
        return HttpCatalog(**options)
    raise ValueError(f"unknown catalog backend {config.backend}")
