"""Quote service: the quote aggregate, its editing operations and persistence."""
import copy
import logging
import secrets
import string
import time
from typing import Dict, Any, List

from app.models.quote import QuoteStatus, IDENTITY_FIELDS
from app.services import pricing_service
from app.services.approval_service import ensure_editable
from app.services.auth_service import ensure_permission, actor_email
from app.services.grouping_service import group_by_item
from app.utils.formatters import now_stamps
from app.utils.number_format import to_decimal
from app.exceptions import ValidationError, NotFoundError

logger = logging.getLogger(__name__)

QUOTE_ID_PREFIX = 'COT'
BASE36 = string.ascii_lowercase + string.digits

# Artifacts that belong to one approval cycle and are not copied on duplicate
CYCLE_FIELDS = (
    'vendorName', 'vendorEmail', 'sentForApprovalAt',
    'selectedOptions', 'itemComments',
    'approvalDate', 'approvalDateFormatted', 'approvedBy',
    'revisionDate', 'revisionDateFormatted', 'revisedBy',
    'deniedBy', 'denialDate', 'denialDateFormatted',
    'purchaseData', 'purchaseStatus', 'purchaseHistory',
    'purchaseCompletedAt', 'purchaseCompletedBy', 'purchaseNotes',
)


def generate_cotizacion_id(prefix: str = QUOTE_ID_PREFIX) -> str:
    """Human-readable business key, e.g. COT-1760900000000-K3J9X0ZQA."""
    timestamp = int(time.time() * 1000)
    suffix = ''.join(secrets.choice(BASE36) for _ in range(9))
    return f"{prefix}-{timestamp}-{suffix}".upper()


def _trm(quote):
    return to_decimal(quote.get('trmGlobal'), pricing_service.DEFAULT_TRM)


def _with_rows(quote, rows):
    updated = copy.deepcopy(quote)
    updated['rows'] = rows
    updated['totalGeneral'] = pricing_service.quote_totals(rows)['totalGeneral']
    return updated


def _find_row_index(quote, row_id) -> int:
    for index, row in enumerate(quote.get('rows') or []):
        if str(row.get('id')) == str(row_id):
            return index
    raise NotFoundError(f'Producto {row_id} no encontrado en la cotización.')


def _new_item_id():
    return f"item-{secrets.token_hex(6)}"


def _raw_fields(fields):
    """Keep only the row inputs a client may set."""
    return {key: value for key, value in fields.items() if key in pricing_service.RAW_FIELDS}


def new_quote(cliente_name: str, actor, trm_global=None, now=None, prefix: str = QUOTE_ID_PREFIX) -> Dict[str, Any]:
    """Create a draft quote with a single empty product."""
    ensure_permission(actor, 'create_quotes')

    trm = to_decimal(trm_global, pricing_service.DEFAULT_TRM).quantize(pricing_service.CENT)
    date, date_formatted = now_stamps(now)
    first_row = pricing_service.new_row(trm, itemId=_new_item_id(), itemName='Producto 1')

    quote = {
        'id': None,
        'cotizacion_id': generate_cotizacion_id(prefix),
        'clienteName': (cliente_name or '').strip(),
        'trmGlobal': trm,
        'rows': [],
        'totalGeneral': 0,
        'status': QuoteStatus.DRAFT.value,
        'date': date,
        'dateFormatted': date_formatted,
        'createdBy': actor_email(actor),
    }
    return _with_rows(quote, [first_row])


def set_cliente_name(quote: Dict[str, Any], cliente_name: str) -> Dict[str, Any]:
    ensure_editable(quote)
    updated = copy.deepcopy(quote)
    updated['clienteName'] = (cliente_name or '').strip()
    return updated


def add_product(quote: Dict[str, Any], item_name: str, item_description: str = '', **fields) -> Dict[str, Any]:
    """Add a new item (logical product) with its first option."""
    ensure_editable(quote)
    if not (item_name or '').strip():
        raise ValidationError('El nombre del producto es obligatorio.')

    row = pricing_service.new_row(
        _trm(quote),
        **dict(_raw_fields(fields), itemId=_new_item_id(), itemName=item_name.strip(),
               itemDescription=item_description or '')
    )
    return _with_rows(quote, copy.deepcopy(quote.get('rows') or []) + [row])


def add_option(quote: Dict[str, Any], item_id: str, **fields) -> Dict[str, Any]:
    """Add another provider option to an existing item."""
    ensure_editable(quote)

    rows = quote.get('rows') or []
    group = next((g for g in group_by_item(rows) if g['item']['id'] == item_id), None)
    if group is None:
        raise NotFoundError(f'Producto {item_id} no encontrado en la cotización.')

    template = group['options'][0]
    fields = _raw_fields(fields)
    fields.pop('itemId', None)
    row = pricing_service.new_row(
        _trm(quote),
        **dict(
            fields,
            itemId=item_id,
            itemName=template.get('itemName') or group['item']['name'],
            itemDescription=template.get('itemDescription') or group['item']['description'],
        )
    )
    return _with_rows(quote, copy.deepcopy(rows) + [row])


def update_row(quote: Dict[str, Any], row_id, field: str, value) -> Dict[str, Any]:
    """Edit one raw input of a row; the row and the total are recalculated."""
    ensure_editable(quote)
    index = _find_row_index(quote, row_id)

    rows = copy.deepcopy(quote['rows'])
    rows[index] = pricing_service.update_row_field(rows[index], field, value, _trm(quote))
    return _with_rows(quote, rows)


def set_additional_costs(quote: Dict[str, Any], row_id, costs: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Replace a row's additional costs, dropping entries that would not count."""
    ensure_editable(quote)
    index = _find_row_index(quote, row_id)

    rows = copy.deepcopy(quote['rows'])
    rows[index] = pricing_service.update_row_field(
        rows[index], 'additionalCosts', pricing_service.clean_additional_costs(costs), _trm(quote)
    )
    return _with_rows(quote, rows)


def remove_row(quote: Dict[str, Any], row_id) -> Dict[str, Any]:
    """Remove a row; a quote always keeps at least one."""
    ensure_editable(quote)
    index = _find_row_index(quote, row_id)

    if len(quote['rows']) <= 1:
        raise ValidationError('La cotización debe tener al menos un producto.')

    rows = copy.deepcopy(quote['rows'])
    del rows[index]
    return _with_rows(quote, rows)


def set_global_trm(quote: Dict[str, Any], trm) -> Dict[str, Any]:
    """Change the quote-level exchange rate and propagate it to every row."""
    ensure_editable(quote)
    trm = to_decimal(trm)
    if trm is not None:
        trm = trm.quantize(pricing_service.CENT)
    if trm is None or trm <= 0:
        raise ValidationError('La TRM debe ser mayor a 0.')

    updated = _with_rows(quote, pricing_service.apply_trm(copy.deepcopy(quote.get('rows') or []), trm))
    updated['trmGlobal'] = trm
    return updated


def recalculate(quote: Dict[str, Any]) -> Dict[str, Any]:
    """Recalculate every row (e.g. after loading floats from the store)."""
    trm = _trm(quote)
    rows = [pricing_service.calculate_row(row, trm) for row in quote.get('rows') or []]
    return _with_rows(quote, rows)


def grouped_rows(quote: Dict[str, Any]) -> List[Dict[str, Any]]:
    return group_by_item(quote.get('rows') or [])


def quote_summary(quote: Dict[str, Any]) -> Dict[str, Any]:
    """Totals plus the grouped view of a quote."""
    summary = pricing_service.quote_totals(quote.get('rows') or [])
    summary['items'] = grouped_rows(quote)
    return summary


def duplicate_quote(quote: Dict[str, Any], actor, now=None, prefix: str = QUOTE_ID_PREFIX) -> Dict[str, Any]:
    """Copy a quote into a new draft with a fresh business key."""
    ensure_permission(actor, 'duplicate_quotes')

    date, date_formatted = now_stamps(now)
    duplicated = copy.deepcopy(quote)
    for field in CYCLE_FIELDS + ('id', 'createdAt', 'updatedAt'):
        duplicated.pop(field, None)

    duplicated.update({
        'id': None,
        'cotizacion_id': generate_cotizacion_id(prefix),
        'clienteName': f"{quote.get('clienteName', '')} (Copia)",
        'status': QuoteStatus.DRAFT.value,
        'date': date,
        'dateFormatted': date_formatted,
        'createdBy': actor_email(actor),
    })
    return recalculate(duplicated)


def quote_stats(quotes: List[Dict[str, Any]]) -> Dict[str, int]:
    """Count quotes per status."""
    stats = {status.value: 0 for status in QuoteStatus}
    for quote in quotes:
        stats[QuoteStatus.normalize(quote.get('status')).value] += 1
    stats['total'] = len(quotes)
    return stats


# ============================================================================
# PERSISTENCE
# ============================================================================

def persist_quote(store, quote: Dict[str, Any]) -> Dict[str, Any]:
    """
    Save a quote through the store and return the stored document.

    New quotes are created; existing ones are merged by id with the identity
    fields stripped from the payload, so an update can never drop them.
    """
    if not quote.get('id'):
        stored = store.create(quote)
        logger.info(f"Quote {stored.get('cotizacion_id')} created with id {stored.get('id')}")
        return stored

    changes = {
        key: value for key, value in quote.items()
        if key not in IDENTITY_FIELDS and key not in ('id', 'updatedAt')
    }
    return store.update(quote['id'], changes)


def load_quote(store, quote_id) -> Dict[str, Any]:
    quote = store.get(quote_id)
    if quote is None:
        raise NotFoundError(f'Cotización {quote_id} no encontrada.')
    return quote
