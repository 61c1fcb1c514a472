"""
Conversion of reporting API payloads into data models.
"""

import logging
import re
from typing import Any, Dict, List

from regvariance.data.models import (
    CELL_DESCRIPTION_COLUMN,
    CELL_REFERENCE_COLUMN,
    DIFFERENCE_COLUMN,
    PERCENT_DIFFERENCE_COLUMN,
    Instance,
    ValidationCell,
    ValidationResult,
    VarianceRow,
)
from regvariance.gateway.errors import GatewayError, GatewayErrorCode

logger = logging.getLogger(__name__)

GRID_KEY_PATTERN = re.compile(r'GRID\d*KEY')

VALIDATION_FIELDS = ('severity', 'expression', 'status')
VALIDATION_CELL_FIELDS = {
    'cell': 'cell',
    'value': 'value',
    'instanceId': 'instance_id',
    'pageName': 'page_name',
    'form': 'form',
    'referenceDate': 'reference_date',
}


def parse_instances(payload: Any) -> List[Instance]:
    """
    Parse the form versions listing.

    Args:
        payload: Decoded JSON, a list of {instanceId, refDate} objects

    Returns:
        Instances sorted by reference date

    Raises:
        GatewayError: If the payload is not a list of well-formed entries
    """
    if not isinstance(payload, list):
        raise GatewayError('Invalid form versions response format', GatewayErrorCode.VALIDATION_ERROR)

    instances = []
    for entry in payload:
        if not isinstance(entry, dict):
            raise GatewayError('Invalid form version entry', GatewayErrorCode.VALIDATION_ERROR)
        instance_id = entry.get('instanceId')
        ref_date = entry.get('refDate')
        if not isinstance(instance_id, (str, int)) or not isinstance(ref_date, str):
            raise GatewayError(f"Invalid form version entry: {entry}", GatewayErrorCode.VALIDATION_ERROR)
        instances.append(Instance(id=str(instance_id), reference_date=ref_date))

    return sorted(instances, key=lambda inst: inst.reference_date)


def _instance_value(entries: List[Dict[str, Any]], index: int) -> Any:
    if index >= len(entries):
        return ''
    entry = entries[index] or {}
    if entry.get('cellNotPresent'):
        return ''
    value = entry.get('value')
    return '' if value is None else value


def parse_variance_records(payload: Any, from_instance: Instance,
                           to_instance: Instance) -> List[VarianceRow]:
    """
    Flatten cell analysis records into variance rows.

    Each row carries the cell reference and description, the value of the
    cell in each instance keyed by reference date, and the difference columns.
    Grid key cells are dropped and rows are sorted by cell reference.
    """
    if not isinstance(payload, list):
        raise GatewayError('Invalid variance records response format', GatewayErrorCode.VALIDATION_ERROR)

    rows = []
    for record in payload:
        if not isinstance(record, dict) or not isinstance(record.get('cell'), dict):
            raise GatewayError('Invalid variance record', GatewayErrorCode.VALIDATION_ERROR)
        cell = record['cell']
        name = cell.get('name')
        if not isinstance(name, str):
            raise GatewayError('Variance record without cell name', GatewayErrorCode.VALIDATION_ERROR)
        entries = record.get('instances') or []
        if not isinstance(entries, list) or not all(e is None or isinstance(e, dict) for e in entries):
            raise GatewayError(f"Invalid instance values for cell {name}", GatewayErrorCode.VALIDATION_ERROR)

        if GRID_KEY_PATTERN.search(name):
            continue

        cell_name = f"{name} (Subtotal)" if cell.get('subtotal') else name

        latest = entries[1] if len(entries) > 1 and entries[1] else {}
        difference = latest.get('difference')
        if difference is not None and not isinstance(difference, dict):
            raise GatewayError(f"Invalid difference for cell {name}", GatewayErrorCode.VALIDATION_ERROR)
        if difference:
            diff_value = difference.get('valueDiff')
            diff_percent = difference.get('percentageDiff')
        else:
            diff_value = latest.get('value', '')
            diff_percent = ''

        rows.append({
            CELL_REFERENCE_COLUMN: cell_name,
            CELL_DESCRIPTION_COLUMN: cell.get('description') or '',
            from_instance.reference_date: _instance_value(entries, 0),
            to_instance.reference_date: _instance_value(entries, 1),
            DIFFERENCE_COLUMN: '' if diff_value is None else diff_value,
            PERCENT_DIFFERENCE_COLUMN: '' if diff_percent is None else diff_percent,
        })

    rows.sort(key=lambda row: str(row[CELL_REFERENCE_COLUMN]))
    return rows


def _parse_validation_detail(detail: Any) -> ValidationResult:
    if not isinstance(detail, dict):
        raise ValueError('validation detail is not an object')
    for key in VALIDATION_FIELDS:
        if not isinstance(detail.get(key), str):
            raise ValueError(f"missing {key}")
    message = detail.get('message')
    if message is not None and not isinstance(message, str):
        raise ValueError('message is not a string')

    cells = []
    for raw_cell in detail.get('referencedCells') or []:
        if not isinstance(raw_cell, dict):
            raise ValueError('referenced cell is not an object')
        cells.append(ValidationCell(**{
            attr: str(raw_cell.get(key, '')) for key, attr in VALIDATION_CELL_FIELDS.items()
        }))

    return ValidationResult(
        severity=detail['severity'],
        expression=detail['expression'],
        status=detail['status'],
        message=message,
        referenced_cells=cells,
    )


def parse_validation_results(payload: Any, instance: Instance) -> List[ValidationResult]:
    """
    Parse a validation response.

    Malformed entries are skipped; a response without validationDetails
    yields an empty list.
    """
    details = payload.get('validationDetails') if isinstance(payload, dict) else None
    if not isinstance(details, list):
        logger.warning(f"Invalid validation response structure for {instance.id}, returning empty results")
        return []

    results = []
    for detail in details:
        try:
            results.append(_parse_validation_detail(detail))
        except ValueError as e:
            logger.warning(f"Skipping invalid validation detail: {e}")

    failures = sum(1 for r in results if r.failed)
    warnings = sum(1 for r in results if r.severity == 'Warning')
    logger.info(f"Parsed {len(results)} validation results for {instance.id}")
    logger.info(f"Failures: {failures}, Warnings: {warnings}")
    return results
