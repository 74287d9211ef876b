"""Grouping of line-item options under the logical product (item) they quote."""
import re
from typing import Dict, Any, List

WHITESPACE = re.compile(r'\s+')


def _slug(text: str) -> str:
    return WHITESPACE.sub('-', str(text).strip()).lower()


def derive_item_key(row: Dict[str, Any], index: int = 0) -> str:
    """
    Deterministic item key for a row.

    Priority: itemId > itemName slug > marca-referencia slug (both present)
    > row id > position in the list. Grouping and approval resolution both
    use this function so they agree on what "the same item" is.
    """
    item_id = row.get('itemId')
    if item_id not in (None, ''):
        return str(item_id)

    item_name = str(row.get('itemName') or '').strip()
    if item_name:
        return f"item-{_slug(item_name)}"

    marca = str(row.get('marca') or '').strip()
    referencia = str(row.get('referencia') or '').strip()
    if marca and referencia:
        return f"item-{_slug(f'{marca}-{referencia}')}"

    row_id = row.get('id')
    if row_id not in (None, ''):
        return f"item-{row_id}"
    return f"item-{index}"


def derive_item_name(row: Dict[str, Any], index: int = 0) -> str:
    """Display name of the item a row belongs to."""
    if str(row.get('itemName') or '').strip():
        return row['itemName'].strip()
    if str(row.get('configuracion') or '').strip():
        return row['configuracion'].strip()
    marca = str(row.get('marca') or '').strip()
    referencia = str(row.get('referencia') or '').strip()
    if marca and referencia:
        return f"{marca} {referencia}"
    return f"Producto {index + 1}"


def group_by_item(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Group rows by item, keeping first-seen order of items and of options.

    Returns a list of {'item': {'id', 'name', 'description'}, 'options': [row, ...]}.
    Every row lands in exactly one group.
    """
    groups = {}

    for index, row in enumerate(rows or []):
        key = derive_item_key(row, index)
        if key not in groups:
            groups[key] = {
                'item': {
                    'id': key,
                    'name': derive_item_name(row, index),
                    'description': row.get('itemDescription') or row.get('configuracion') or '',
                },
                'options': [],
            }
        groups[key]['options'].append(row)

    return list(groups.values())
