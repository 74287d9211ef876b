"""
Pricing engine for quote line items (rows).

Every derived monetary field of a row is a pure function of its raw inputs.
Rows are plain dicts keyed like the stored documents (costoUSD, pvpTotal...);
money is handled as Decimal.
"""
import uuid
from decimal import Decimal
from typing import Dict, Any, List, Optional

from app.exceptions import ValidationError
from app.utils.number_format import to_decimal

ZERO = Decimal('0')
ONE = Decimal('1')
HUNDRED = Decimal('100')
CENT = Decimal('0.01')

DEFAULT_TRM = Decimal('4200')
DEFAULT_MARGIN = Decimal('30')

CURRENCY_USD = 'USD'
CURRENCY_COP = 'COP'
CURRENCIES = (CURRENCY_USD, CURRENCY_COP)

RAW_FIELDS = (
    'itemId', 'itemName', 'itemDescription',
    'cantidad', 'mayorista', 'marca', 'referencia', 'configuracion',
    'costoUSD', 'trm', 'ivaPercentCosto', 'margen', 'ivaPercentPVP',
    'additionalCosts',
    # Manual local-currency cost, used when there is no USD cost
    'costoCOP',
)

DERIVED_FIELDS = (
    'additionalCostUSD', 'costoCOP', 'valorIvaCosto', 'costoConIva',
    'costoTotal', 'pvpUnitario', 'valorIvaPVP', 'pvpMasIva', 'pvpTotal',
)


def _non_negative(value, default=ZERO) -> Decimal:
    number = to_decimal(value, default)
    return max(ZERO, number)


def _new_id(prefix):
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


# ============================================================================
# ADDITIONAL COSTS
# ============================================================================

def sum_additional_costs_usd(costs: Optional[List[Dict[str, Any]]], trm) -> Decimal:
    """
    Fold a row's additional costs into one USD amount.

    Only entries with a non-empty description count. USD entries add their
    valueUSD when positive; COP entries add valueCOP / trm when both are
    positive. No rounding.
    """
    trm = to_decimal(trm, ZERO)
    total = ZERO

    for cost in costs or []:
        if not str(cost.get('description') or '').strip():
            continue

        currency = str(cost.get('currency') or CURRENCY_USD).upper()
        if currency == CURRENCY_USD:
            value = to_decimal(cost.get('valueUSD'), ZERO)
            if value > 0:
                total += value
        elif currency == CURRENCY_COP:
            value = to_decimal(cost.get('valueCOP'), ZERO)
            if value > 0 and trm > 0:
                total += value / trm

    return total


def new_additional_cost(description='', currency=CURRENCY_USD, value=0, include_iva=True) -> Dict[str, Any]:
    """Create an additional cost entry with the value set in its currency."""
    cost = {
        'id': _new_id('cost'),
        'description': description,
        'currency': CURRENCY_USD,
        'valueUSD': ZERO,
        'valueCOP': ZERO,
        'includeIVA': include_iva,
    }
    return set_additional_cost_value(cost, currency, value)


def set_additional_cost_value(cost: Dict[str, Any], currency: str, value) -> Dict[str, Any]:
    """
    Return a copy of ``cost`` with ``value`` set in ``currency``.

    valueUSD and valueCOP are mutually exclusive: the other one is zeroed.
    """
    currency = str(currency or '').upper()
    if currency not in CURRENCIES:
        raise ValidationError(f'Moneda no soportada: {currency}')

    updated = dict(cost)
    updated['currency'] = currency
    if currency == CURRENCY_USD:
        updated['valueUSD'] = _non_negative(value)
        updated['valueCOP'] = ZERO
    else:
        updated['valueCOP'] = _non_negative(value)
        updated['valueUSD'] = ZERO
    return updated


def clean_additional_costs(costs: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Drop entries that would not count toward the row cost."""
    valid = []
    for cost in costs or []:
        if not str(cost.get('description') or '').strip():
            continue
        currency = str(cost.get('currency') or CURRENCY_USD).upper()
        key = 'valueUSD' if currency == CURRENCY_USD else 'valueCOP'
        if to_decimal(cost.get(key), ZERO) > 0:
            valid.append(dict(cost))
    return valid


# ============================================================================
# ROW CALCULATION
# ============================================================================

def calculate_row(row: Dict[str, Any], fallback_trm=DEFAULT_TRM) -> Dict[str, Any]:
    """
    Return a new row with every derived field recomputed from the raw inputs.

    Formula chain:
        costoCOP     = (costoUSD + additionalCostUSD) * trm, or the stored
                       costoCOP when there is no USD cost or no trm
        valorIvaCosto= costoCOP * ivaPercentCosto / 100
        costoConIva  = costoCOP + valorIvaCosto
        costoTotal   = costoConIva * cantidad
        pvpUnitario  = costoCOP / (1 - margen / 100), or costoCOP when margen >= 100
        valorIvaPVP  = pvpUnitario * ivaPercentPVP / 100
        pvpMasIva    = pvpUnitario + valorIvaPVP
        pvpTotal     = pvpMasIva * cantidad

    COP amounts are rounded to cents at each step, so pvpTotal and costoTotal
    are exact multiples of 0.01 and totals summed from them stay exact.
    Pure and idempotent. Negative inputs clamp to zero and cantidad to 1.
    """
    cantidad_value = to_decimal(row.get('cantidad'), ONE)
    cantidad = max(1, int(cantidad_value)) if cantidad_value else 1
    costo_usd = _non_negative(row.get('costoUSD'))

    trm = to_decimal(row.get('trm'), ZERO)
    if not trm:
        trm = to_decimal(fallback_trm, ZERO)
    trm = max(ZERO, trm)

    iva_percent_costo = _non_negative(row.get('ivaPercentCosto'))
    margen = _non_negative(row.get('margen'), DEFAULT_MARGIN)
    iva_percent_pvp = _non_negative(row.get('ivaPercentPVP'))

    additional_cost_usd = sum_additional_costs_usd(row.get('additionalCosts'), trm)
    total_costo_usd = costo_usd + additional_cost_usd

    if total_costo_usd > 0 and trm > 0:
        costo_cop = (total_costo_usd * trm).quantize(CENT)
    else:
        costo_cop = _non_negative(row.get('costoCOP')).quantize(CENT)

    valor_iva_costo = (costo_cop * iva_percent_costo / HUNDRED).quantize(CENT)
    costo_con_iva = costo_cop + valor_iva_costo
    costo_total = costo_con_iva * cantidad

    denominator = ONE - margen / HUNDRED
    pvp_unitario = (costo_cop / denominator).quantize(CENT) if denominator > 0 else costo_cop

    valor_iva_pvp = (pvp_unitario * iva_percent_pvp / HUNDRED).quantize(CENT)
    pvp_mas_iva = pvp_unitario + valor_iva_pvp
    pvp_total = pvp_mas_iva * cantidad

    calculated = dict(row)
    calculated.update({
        'cantidad': cantidad,
        'costoUSD': costo_usd,
        'trm': trm,
        'ivaPercentCosto': iva_percent_costo,
        'margen': margen,
        'ivaPercentPVP': iva_percent_pvp,
        'additionalCosts': [dict(cost) for cost in row.get('additionalCosts') or []],
        'additionalCostUSD': additional_cost_usd,
        'costoCOP': costo_cop,
        'valorIvaCosto': valor_iva_costo,
        'costoConIva': costo_con_iva,
        'costoTotal': costo_total,
        'pvpUnitario': pvp_unitario,
        'valorIvaPVP': valor_iva_pvp,
        'pvpMasIva': pvp_mas_iva,
        'pvpTotal': pvp_total,
    })
    return calculated


def new_row(fallback_trm=DEFAULT_TRM, **fields) -> Dict[str, Any]:
    """Create a calculated row with default inputs, overridden by ``fields``."""
    row = {
        'id': _new_id('row'),
        'itemId': None,
        'itemName': '',
        'itemDescription': '',
        'cantidad': 1,
        'mayorista': '',
        'marca': '',
        'referencia': '',
        'configuracion': '',
        'costoUSD': ZERO,
        'trm': to_decimal(fallback_trm, DEFAULT_TRM),
        'costoCOP': ZERO,
        'ivaPercentCosto': ZERO,
        'margen': DEFAULT_MARGIN,
        'ivaPercentPVP': ZERO,
        'additionalCosts': [],
    }
    row.update(fields)
    return calculate_row(row, fallback_trm)


def update_row_field(row: Dict[str, Any], field: str, value, fallback_trm=DEFAULT_TRM) -> Dict[str, Any]:
    """Set one raw input on a copy of ``row`` and recalculate it."""
    if field not in RAW_FIELDS:
        raise ValidationError(f'El campo {field} no es editable.')

    updated = dict(row)
    updated[field] = value
    if field == 'costoCOP':
        # Last explicit entry wins: a manual local cost replaces the USD cost.
        # Additional costs still convert through trm and take precedence.
        updated['costoUSD'] = ZERO

    return calculate_row(updated, fallback_trm)


def apply_trm(rows: List[Dict[str, Any]], trm) -> List[Dict[str, Any]]:
    """Propagate a new quote-level exchange rate into every row."""
    trm = _non_negative(trm)
    return [calculate_row(dict(row, trm=trm), trm) for row in rows]


def quote_totals(rows: List[Dict[str, Any]]) -> Dict[str, Decimal]:
    """Sale total, cost total and overall margin over cost for a row set."""
    total_general = sum((to_decimal(row.get('pvpTotal'), ZERO) for row in rows), ZERO)
    total_costo = sum((to_decimal(row.get('costoTotal'), ZERO) for row in rows), ZERO)
    margen_total = total_general - total_costo
    margen_porcentaje = (margen_total / total_costo * HUNDRED) if total_costo > 0 else ZERO

    return {
        'totalGeneral': total_general,
        'totalCosto': total_costo,
        'margenTotal': margen_total,
        'margenPorcentaje': margen_porcentaje,
    }
