# ============================================================================
#  price_resolver.py - Tariff Condition Price Resolver
#  Version: 1.0.0
# ============================================================================
import logging
from typing import Any, List
from models import PriceResolution, TariffCondition
from sanitizer import to_number

logger = logging.getLogger(__name__)

# Keys the ERP has used over time for the list wrapper and for each field
WRAPPER_KEYS = ("conditions", "CondicionesTarifa", "Condiciones")
PRICE_KEYS = ("Precio", "price")
PERCENT_KEYS = ("Dto", "percent_discount", "DescuentoPorcentaje")
PER_UNIT_KEYS = ("DtoEurosXUd", "per_unit_discount")


def _first_number(entry: dict, keys) -> Any:
    for key in keys:
        if key in entry:
            return to_number(entry[key])
    return None


class PriceResolver:
    """Picks the effective price out of an ERP tariff-condition payload.

    Selection is first-match: the first condition carrying a strictly positive
    price wins and later conditions are never compared against it.
    """

    @staticmethod
    def normalize(payload: Any) -> List[TariffCondition]:
        """Turns a wrapper map, a bare list or a single condition into a list."""
        if payload is None:
            return []
        if isinstance(payload, dict):
            raw_list = None
            for key in WRAPPER_KEYS:
                if key in payload:
                    raw_list = payload[key]
                    break
            if raw_list is None:
                raw_list = [payload] if any(k in payload for k in PRICE_KEYS) else []
            elif isinstance(raw_list, dict):
                raw_list = [raw_list]
        elif isinstance(payload, (list, tuple)):
            raw_list = payload
        else:
            logger.debug(f"Unsupported tariff payload type: {type(payload).__name__}")
            return []

        if not isinstance(raw_list, (list, tuple)):
            return []

        conditions = []
        for entry in raw_list:
            if not isinstance(entry, dict):
                logger.debug(f"Skipping non-map tariff condition: {entry!r}")
                continue
            conditions.append(TariffCondition(
                price=_first_number(entry, PRICE_KEYS),
                percent_discount=_first_number(entry, PERCENT_KEYS),
                per_unit_discount=_first_number(entry, PER_UNIT_KEYS),
            ))
        return conditions

    def resolve(self, payload: Any) -> PriceResolution:
        for condition in self.normalize(payload):
            base = condition.price
            if base is None or base <= 0:
                continue

            if condition.percent_discount and condition.percent_discount > 0:
                effective = base - base * condition.percent_discount / 100
            elif condition.per_unit_discount and condition.per_unit_discount > 0:
                effective = base - condition.per_unit_discount
            else:
                effective = base

            return PriceResolution(found=True, base_price=base, effective_price=round(max(effective, 0.0), 4))

        return PriceResolution(found=False)
# ============================================================================
# End of price_resolver.py - Version: 1.0.0
# ============================================================================
