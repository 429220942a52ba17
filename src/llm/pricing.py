"""Cost model: prices upstream token counts against the model catalog.

Costs are kept at full float precision when recorded and summed; rounding
happens only when a figure is rendered for display.
"""

from __future__ import annotations

from src.core.constants import USD_DISPLAY_DIGITS
from src.core.logging import get_logger
from src.core.types import ModelDescriptor
from src.llm.catalog import MODEL_CATALOG

log = get_logger(__name__)


class CostModel:
    """Maps (model id, input units, output units) to a USD amount.

    Usage:
        cost_model = CostModel()
        cost = cost_model.price("openai/gpt-4o", input_units=1200, output_units=300)
    """

    def __init__(self, catalog: tuple[ModelDescriptor, ...] = MODEL_CATALOG) -> None:
        self._rates: dict[str, ModelDescriptor] = {m.model_id: m for m in catalog}

    def price(self, model_id: str, input_units: int, output_units: int) -> float:
        """Cost in USD. Unknown models price as zero so volume is still recorded."""
        model = self._rates.get(model_id)
        if model is None:
            log.warning("pricing_missing", model=model_id)
            return 0.0

        cost = (
            max(0, input_units) / 1_000_000 * model.input_per_m
            + max(0, output_units) / 1_000_000 * model.output_per_m
        )
        return max(0.0, cost)


def round_usd(amount: float, digits: int = USD_DISPLAY_DIGITS) -> float:
    """Display rounding only. Never feed the result back into accounting."""
    return round(amount, digits)
