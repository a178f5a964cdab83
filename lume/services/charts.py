import httpx
from loguru import logger

from lume.models.schemas import ChartRequest

PALETTE = [
    "#36A2EB", "#FF6384", "#FFCE56", "#4BC0C0", "#9966FF",
    "#FF9F40", "#8DD17E", "#C49C94", "#B39CD0", "#F7786B",
]


class ChartError(Exception):
    pass


class ChartRenderer:
    """Renders category doughnut charts through the QuickChart HTTP API."""

    def __init__(self, url: str, max_categories: int = 8, timeout: float = 15.0):
        self.url = url
        self.max_categories = max_categories
        self.timeout = timeout

    def build_config(self, request: ChartRequest) -> dict:
        labels = request.labels[: self.max_categories]
        values = [float(v) for v in request.values[: self.max_categories]]
        return {
            "type": "doughnut",
            "data": {
                "labels": labels,
                "datasets": [
                    {
                        "data": values,
                        "borderWidth": 2,
                        "borderColor": "#ffffff",
                        "backgroundColor": PALETTE[: len(labels)],
                    }
                ],
            },
            "options": {
                "layout": {"padding": 18},
                "plugins": {
                    "legend": {"position": "bottom"},
                    "title": {"display": True, "text": "Distribuição por Categoria"},
                },
            },
        }

    async def render(self, request: ChartRequest) -> bytes:
        payload = {
            "width": 700,
            "height": 420,
            "backgroundColor": "#ffffff",
            "format": "png",
            "chart": self.build_config(request),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise ChartError(f"Chart rendering failed: {e}") from e

        logger.debug("Rendered chart with {} categories", len(request.labels))
        return response.content
