import os
import json
import logging
import tempfile
from datetime import datetime
from typing import List, Optional

from location_models import DataPoint, ExportError, FilterOptions

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    'id', 'latitude', 'longitude', 'title', 'description', 'category',
    'timestamp', 'visitCount', 'lastVisit'
]
EXPORT_FORMATS = ('csv', 'json')


def export_filename(export_format: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"timeline_data_{now.strftime('%Y-%m-%d')}.{export_format}"


def csv_columns(rows: List[dict]) -> List[str]:
    """Fixed columns first, then every other key in first-seen order"""
    columns = list(CSV_COLUMNS)
    seen = set(columns)
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                columns.append(key)
    return columns


def format_csv_value(value) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        text = 'true' if value else 'false'
    elif isinstance(value, (dict, list)):
        text = json.dumps(value, ensure_ascii=False)
    else:
        text = str(value)
    if ',' in text or '"' in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def export_to_csv(points: List[DataPoint]) -> str:
    rows = [p.to_dict() for p in points]
    columns = csv_columns(rows)
    lines = [','.join(columns)]
    for row in rows:
        lines.append(','.join(format_csv_value(row.get(column)) for column in columns))
    return '\n'.join(lines)


def export_to_json(points: List[DataPoint], filters: Optional[FilterOptions] = None,
                   total_points: Optional[int] = None, include_metadata: bool = True,
                   now: Optional[datetime] = None) -> str:
    """Serialize the filtered points, optionally wrapped with export metadata"""
    data = [p.to_dict() for p in points]
    if not include_metadata:
        return json.dumps(data, indent=2, ensure_ascii=False)

    envelope = {
        'metadata': {
            'exportDate': (now or datetime.now()).isoformat(),
            'filters': (filters or FilterOptions()).to_dict(),
            'filteredPoints': len(points),
            'totalPoints': total_points if total_points is not None else len(points),
        },
        'data': data,
    }
    return json.dumps(envelope, indent=2, ensure_ascii=False)


def render_export(points: List[DataPoint], export_format: str, filters: Optional[FilterOptions] = None,
                  total_points: Optional[int] = None, include_metadata: bool = True,
                  now: Optional[datetime] = None) -> str:
    if export_format not in EXPORT_FORMATS:
        raise ExportError(f"Unsupported export format: {export_format}")
    if not points:
        raise ExportError('No data to export with current filters.')

    try:
        if export_format == 'csv':
            return export_to_csv(points)
        return export_to_json(points, filters, total_points, include_metadata, now)
    except (TypeError, ValueError) as e:
        raise ExportError('Export failed. Please try again.', cause=e)


def write_export(points: List[DataPoint], export_format: str, output_dir: str,
                 filters: Optional[FilterOptions] = None, total_points: Optional[int] = None,
                 include_metadata: bool = True, now: Optional[datetime] = None) -> str:
    """Write an export file and return its path.

    Content is rendered in full before anything touches disk, then written
    to a temporary file and moved into place, so a failure never leaves a
    partial export behind.
    """
    content = render_export(points, export_format, filters, total_points, include_metadata, now)
    target = os.path.join(output_dir, export_filename(export_format, now))

    tmp_path = None
    try:
        os.makedirs(output_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=output_dir, suffix='.tmp')
        with os.fdopen(fd, 'w', encoding='utf-8', newline='') as f:
            f.write(content)
        os.replace(tmp_path, target)
    except OSError as e:
        if tmp_path and os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise ExportError(f"Could not write export file: {e}", cause=e)

    logger.info(f"Exported {len(points)} points to {target}")
    return target
