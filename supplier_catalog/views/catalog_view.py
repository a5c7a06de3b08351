"""
Catalog View.
Turns operation results into camelCase JSON payloads.
"""

from typing import Any, List

from supplier_catalog.models import CatalogModel, utcnow


class CatalogView:
    """
    View layer for catalog operations.
    """

    @staticmethod
    def _wire(value: Any) -> Any:
        if isinstance(value, CatalogModel):
            return value.to_wire()
        if isinstance(value, list):
            return [CatalogView._wire(v) for v in value]
        return value

    @staticmethod
    def render(op: str, result: Any) -> Any:
        """
        Render the result of `op`.

        listActive is wrapped as {"success", "items"}; everything else
        is the wire form of the returned model(s).
        """
        if op == "listActive":
            return {"success": True, "items": CatalogView._wire(result)}
        return CatalogView._wire(result)

    @staticmethod
    def health(circuits: List[dict]) -> dict:
        return {
            "status": "healthy",
            "service": "supplier-catalog",
            "circuits": circuits,
            "timestamp": utcnow().isoformat(),
        }
