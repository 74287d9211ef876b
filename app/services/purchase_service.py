"""Purchase service: buyers record final purchase prices on approved quotes."""
import copy
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, Optional, Tuple

from app.models.quote import QuoteStatus
from app.services.auth_service import ensure_permission, actor_email
from app.utils.formatters import now_stamps
from app.utils.number_format import to_decimal
from app.exceptions import ValidationError, InvalidTransitionError

logger = logging.getLogger(__name__)

PURCHASE_IN_PROGRESS = 'in_progress'
PURCHASE_COMPLETED = 'completed'

HUNDRED = Decimal('100')


def validate_buyer(actor) -> bool:
    """
    Guard: only active buyers may set final purchase prices.

    Raises:
        PermissionDeniedError: role does not grant set_final_purchase_price
        InactiveUserError: buyer is deactivated
    """
    return ensure_permission(actor, 'set_final_purchase_price')


def _ensure_approved(quote, target):
    status = QuoteStatus.normalize(quote.get('status'))
    if status != QuoteStatus.APPROVED:
        raise InvalidTransitionError(
            status.value, target,
            'Solo se pueden registrar compras sobre cotizaciones aprobadas.'
        )


def record_final_price(quote: Dict[str, Any], row_index: int, final_price, buyer,
                       notes: str = '', now=None) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Record the final purchase price of one approved row.

    Writes purchaseData[str(row_index)] on a copy of the quote. rows, status
    and totalGeneral are never touched.

    Returns:
        (updated_quote, purchase_entry)
    """
    validate_buyer(buyer)
    _ensure_approved(quote, 'purchase')

    rows = quote.get('rows') or []
    try:
        row_index = int(row_index)
    except (TypeError, ValueError):
        raise ValidationError('Índice de producto inválido.')
    if row_index < 0 or row_index >= len(rows):
        raise ValidationError(f'No existe el producto {row_index} en la cotización.')

    price = to_decimal(final_price)
    if price is None or price <= 0:
        raise ValidationError('El precio final de compra debe ser mayor a 0.')

    updated_at, _ = now_stamps(now)
    entry = {
        'itemIndex': row_index,
        'finalPurchasePrice': price,
        'updatedBy': actor_email(buyer),
        'updatedAt': updated_at,
        'buyerNotes': notes or '',
    }

    updated = copy.deepcopy(quote)
    purchase_data = dict(updated.get('purchaseData') or {})
    purchase_data[str(row_index)] = entry
    history = list(updated.get('purchaseHistory') or [])
    history.append(dict(entry, action='price_update'))

    updated.update({
        'purchaseData': purchase_data,
        'purchaseStatus': PURCHASE_IN_PROGRESS,
        'purchaseHistory': history,
    })

    logger.info(f"Final price {price} recorded on {quote.get('cotizacion_id')} row {row_index} by {actor_email(buyer)}")
    return updated, entry


def finalize_purchase(quote: Dict[str, Any], buyer, notes: str = '', now=None) -> Dict[str, Any]:
    """Close the purchase process of an approved quote."""
    validate_buyer(buyer)
    _ensure_approved(quote, 'purchase_completed')

    completed_at, _ = now_stamps(now)
    updated = copy.deepcopy(quote)
    history = list(updated.get('purchaseHistory') or [])
    history.append({
        'action': 'purchase_completed',
        'completedBy': actor_email(buyer),
        'notes': notes or '',
        'timestamp': completed_at,
    })
    updated.update({
        'purchaseStatus': PURCHASE_COMPLETED,
        'purchaseCompletedAt': completed_at,
        'purchaseCompletedBy': actor_email(buyer),
        'purchaseNotes': notes or '',
        'purchaseHistory': history,
    })

    logger.info(f"Purchase completed on {quote.get('cotizacion_id')} by {actor_email(buyer)}")
    return updated


def calculate_margin_difference(original_price, final_price, original_margin) -> Optional[Dict[str, Any]]:
    """
    Margin analysis of a final purchase price against the quoted price.

    Display only. Returns None when an input is missing or the numbers make
    the analysis meaningless (zero cost).
    """
    original_price = to_decimal(original_price)
    final_price = to_decimal(final_price)
    original_margin = to_decimal(original_margin)

    if not original_price or not final_price or original_margin is None:
        return None

    try:
        original_cost = original_price / (1 + original_margin / HUNDRED)
        new_margin = (final_price - original_cost) / original_cost * HUNDRED
    except (ZeroDivisionError, InvalidOperation):
        return None

    margin_difference = new_margin - original_margin
    price_difference = final_price - original_price
    percentage_difference = price_difference / original_price * HUNDRED

    return {
        'originalPrice': original_price,
        'finalPrice': final_price,
        'originalCost': original_cost,
        'originalMargin': original_margin,
        'newMargin': new_margin,
        'marginDifference': margin_difference,
        'priceDifference': price_difference,
        'percentageDifference': percentage_difference,
        'isImprovement': margin_difference > 0,
    }


def purchase_summary(quote: Dict[str, Any]):
    """Per-row buyer view: quoted price, recorded final price and margin analysis."""
    purchase_data = quote.get('purchaseData') or {}
    summary = []

    for index, row in enumerate(quote.get('rows') or []):
        entry = purchase_data.get(str(index))
        final_price = entry.get('finalPurchasePrice') if entry else None
        summary.append({
            'rowIndex': index,
            'rowId': row.get('id'),
            'itemName': row.get('itemName'),
            'mayorista': row.get('mayorista'),
            'originalPrice': row.get('pvpTotal'),
            'finalPurchasePrice': final_price,
            'analysis': calculate_margin_difference(row.get('pvpTotal'), final_price, row.get('margen')),
        })

    return summary
