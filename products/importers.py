import csv
import io
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path

from pricing.errors import ConfigNotFound, PricingError

from .models import PRICED_MODELS
from .services import price_imported_entity

logger = logging.getLogger(__name__)

_MODELS_BY_TYPE = {str(model.ENTITY_TYPE): model for model in PRICED_MODELS}


def parse_decimal(value):
    if value is None:
        return None
    v = str(value).strip()
    if v == '':
        return None
    v = v.replace('.', '').replace(',', '.') if ',' in v else v
    try:
        return Decimal(v)
    except InvalidOperation:
        return None


def _read_rows(text):
    # Excel sometimes writes a first line like: sep=;
    lines = text.splitlines()
    delimiter = ';'
    skipped = 0
    if lines and lines[0].lower().startswith('sep=') and len(lines[0]) >= 5:
        delimiter = lines[0][4:5]
        lines = lines[1:]
        skipped = 1
    else:
        sample = '\n'.join(lines[:10])
        try:
            delimiter = csv.Sniffer().sniff(sample, delimiters=';,\t').delimiter or delimiter
        except csv.Error:
            pass
    reader = csv.DictReader(io.StringIO('\n'.join(lines)), delimiter=delimiter)
    for row in reader:
        # line_num counts physical lines, including the header
        yield reader.line_num + skipped, {(key or '').strip().lower(): (value or '').strip() for key, value in row.items()}


def import_costs_from_file(file_like, *, changed_by=None):
    """Update item costs from a CSV with the columns tipo, codigo and custo.

    Returns (updated, unchanged, messages). Rows that fail are reported in
    ``messages`` and never stop the import.
    """
    if isinstance(file_like, (str, Path)):
        with open(file_like, 'r', newline='', encoding='utf-8-sig', errors='ignore') as fh:
            text = fh.read()
    else:
        text = file_like.read()
        if isinstance(text, (bytes, bytearray)):
            text = text.decode('utf-8-sig', errors='ignore')

    updated = 0
    unchanged = 0
    messages = []
    for line_no, row in _read_rows(text):
        entity_type = row.get('tipo') or 'produto'
        code = row.get('codigo') or row.get('código') or ''
        model = _MODELS_BY_TYPE.get(entity_type.lower())
        if model is None:
            messages.append(f'Linha {line_no}: tipo "{entity_type}" desconhecido.')
            continue
        cost = parse_decimal(row.get('custo'))
        if cost is None:
            messages.append(f'Linha {line_no}: custo inválido para {code or "(sem código)"}.')
            continue
        item = model.objects.filter(code=code).first() if code else None
        if item is None:
            messages.append(f'Linha {line_no}: {entity_type} {code or "(sem código)"} não encontrado.')
            continue
        try:
            outcome = price_imported_entity(item, cost, changed_by=changed_by)
        except ConfigNotFound:
            raise
        except PricingError as exc:
            logger.info('pricing: importação da linha %s falhou (%s): %s', line_no, exc.kind, exc.message)
            messages.append(f'Linha {line_no}: {exc.message}')
            continue
        if outcome.changed:
            updated += 1
        else:
            unchanged += 1
    return updated, unchanged, messages
