"""Option-selection resolver: collapses a quote to the options chosen on approval."""
import logging
from decimal import Decimal
from typing import Dict, Any, List

from app.services.grouping_service import group_by_item
from app.utils.number_format import to_decimal

logger = logging.getLogger(__name__)


def missing_selections(rows: List[Dict[str, Any]], selected_options: Dict[str, Any]) -> List[str]:
    """Item keys present in ``rows`` that have no entry in ``selected_options``."""
    selected_options = selected_options or {}
    return [
        group['item']['id'] for group in group_by_item(rows)
        if selected_options.get(group['item']['id']) in (None, '')
    ]


def unmatched_selections(rows: List[Dict[str, Any]], selected_options: Dict[str, Any]) -> List[str]:
    """Item keys whose selection names no option of that item."""
    selected_options = selected_options or {}
    unmatched = []
    for group in group_by_item(rows):
        selected_id = selected_options.get(group['item']['id'])
        if selected_id in (None, ''):
            continue
        if not any(str(row.get('id')) == str(selected_id) for row in group['options']):
            unmatched.append(group['item']['id'])
    return unmatched


def resolve_approval(rows: List[Dict[str, Any]], selected_options: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keep one option per item: the one whose id is selected for its item.

    Groups whose selection matches no option are skipped (never raised on).
    The total is the pvpTotal sum over the surviving rows.
    """
    selected_options = selected_options or {}
    selected_rows = []

    for group in group_by_item(rows):
        selected_id = selected_options.get(group['item']['id'])
        match = None
        if selected_id not in (None, ''):
            match = next(
                (row for row in group['options'] if str(row.get('id')) == str(selected_id)),
                None
            )
        if match is None:
            logger.warning(f"No option matches selection {selected_id!r} for item {group['item']['id']}")
            continue
        selected_rows.append(match)

    total = sum((to_decimal(row.get('pvpTotal'), Decimal('0')) for row in selected_rows), Decimal('0'))
    return {'rows': selected_rows, 'total': total}
