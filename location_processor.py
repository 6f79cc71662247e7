import logging
from datetime import datetime
from typing import List, Optional

from format_adapters import file_extension, select_adapter
from geo_utils import validate_points
from location_models import DataPoint, MalformedInput
from normalizer import normalize_records

logger = logging.getLogger(__name__)

MAX_DIAGNOSTICS = 100


class LocationProcessor:
    """Runs one import: adapter -> normalizer -> validator.

    Produces a fully validated point list or raises a TimelineImportError;
    it never hands back a partial result.
    """

    def __init__(self, task_id: Optional[str] = None):
        self.task_id = task_id
        self.diagnostics = []
        self.stats = {
            'candidates': 0,
            'rejected': 0,
            'final_count': 0,
        }

    def log(self, message: str, level: str = "INFO"):
        """Log message and add it to the diagnostics returned to the UI."""
        logger.log(getattr(logging, level, logging.INFO), message)
        self.diagnostics.append({
            'timestamp': datetime.now().strftime('%H:%M:%S'),
            'level': level,
            'message': message
        })
        # Keep only last 100 messages
        self.diagnostics = self.diagnostics[-MAX_DIAGNOSTICS:]

    @staticmethod
    def decode(content) -> str:
        if isinstance(content, str):
            return content
        try:
            return content.decode('utf-8-sig')
        except UnicodeDecodeError:
            raise MalformedInput('File is not valid UTF-8 text')

    def process_file(self, filename: str, content) -> List[DataPoint]:
        """Parse raw file content into validated DataPoints."""
        adapter = select_adapter(filename)
        text = self.decode(content)
        extension = file_extension(filename)

        self.log(f"Parsing {filename} ({len(text):,} characters) as {extension.upper()}")
        candidates = adapter(text)
        self.stats['candidates'] = len(candidates)

        points = normalize_records(candidates)
        valid = validate_points(points, f"{extension.upper()} file")

        self.stats['rejected'] = len(points) - len(valid)
        self.stats['final_count'] = len(valid)
        if self.stats['rejected']:
            self.log(f"Dropped {self.stats['rejected']:,} record(s) with invalid coordinates", "WARNING")
        self.log(f"Imported {len(valid):,} points from {filename}")
        return valid
