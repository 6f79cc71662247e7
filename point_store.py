import uuid
import logging
import threading
from typing import List, Optional

from location_models import Boundary, DataPoint, FilterOptions
from point_filters import filter_points

logger = logging.getLogger(__name__)


class TimelineStore:
    """In-memory holder of the canonical point set, filters and boundaries.

    The point list is only ever replaced wholesale; readers get the current
    tuple and derive everything else from it.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self._points = ()
        self._filters = FilterOptions()
        self._boundaries = ()
        self.source_name = None
        self.version = 0

    @property
    def points(self) -> List[DataPoint]:
        with self.lock:
            return list(self._points)

    @property
    def filters(self) -> FilterOptions:
        with self.lock:
            return self._filters

    def replace_points(self, points: List[DataPoint], source_name: Optional[str] = None):
        """Swap in a fully validated batch"""
        with self.lock:
            self._points = tuple(points)
            self.source_name = source_name
            self.version += 1
        logger.info(f"Canonical set replaced: {len(points)} points from {source_name or 'unknown source'}")

    def clear(self):
        with self.lock:
            self._points = ()
            self.source_name = None
            self.version += 1
        logger.info("Canonical set cleared")

    def set_filters(self, options: FilterOptions):
        with self.lock:
            self._filters = options
            self.version += 1

    def snapshot(self):
        """(version, points, filters) read together so views agree with each other"""
        with self.lock:
            return self.version, list(self._points), self._filters

    def filtered_points(self) -> List[DataPoint]:
        _, points, filters = self.snapshot()
        return filter_points(points, filters)

    def available_categories(self) -> List[str]:
        return list(dict.fromkeys(p.category for p in self.points if p.category))

    # Boundaries: each update is applied to the list current at that moment

    @property
    def boundaries(self) -> List[Boundary]:
        with self.lock:
            return list(self._boundaries)

    def add_boundary(self, name: str, coordinates, color: str = '#3388ff') -> Boundary:
        boundary = Boundary(id=str(uuid.uuid4()), name=name, coordinates=coordinates, color=color)
        with self.lock:
            self._boundaries = self._boundaries + (boundary,)
        return boundary

    def rename_boundary(self, boundary_id: str, name: str) -> Optional[Boundary]:
        name = (name or '').strip()
        if not name:
            return None
        with self.lock:
            updated = None
            boundaries = []
            for boundary in self._boundaries:
                if boundary.id == boundary_id:
                    boundary = Boundary(id=boundary.id, name=name,
                                        coordinates=boundary.coordinates, color=boundary.color)
                    updated = boundary
                boundaries.append(boundary)
            self._boundaries = tuple(boundaries)
        return updated

    def delete_boundary(self, boundary_id: str) -> bool:
        with self.lock:
            remaining = tuple(b for b in self._boundaries if b.id != boundary_id)
            deleted = len(remaining) != len(self._boundaries)
            self._boundaries = remaining
        return deleted
