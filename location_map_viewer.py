import html
import math
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import folium
import pandas as pd
from folium.plugins import MarkerCluster

from location_models import DataPoint, Viewport, utc_now
from normalizer import parse_timestamp

logger = logging.getLogger(__name__)

# Every point is drawn once per world copy so panning across the antimeridian has no gap
WORLD_OFFSETS = (-360, 0, 360)
MAX_CLUSTER_RADIUS = 50  # px
TILE_SIZE = 256
FIT_PADDING = 0.1
VIEWPORT_PADDING = 0.5
MAX_MERCATOR_LAT = 85.0511287798

CATEGORY_COLORS = {
    'restaurant': '#ff6b6b',
    'hotel': '#4ecdc4',
    'attraction': '#45b7d1',
    'shop': '#96ceb4',
    'transport': '#feca57',
}
DEFAULT_COLOR = '#6c5ce7'

MARKER_SIZE = 12
MIN_MARKER_SIZE = 8
MAX_MARKER_SIZE = 20
BORDER_WIDTH = 2

# (visits greater than, color), checked top down
VISIT_COLOR_TIERS = [
    (5, '#ff4757'),
    (3, '#ff6b6b'),
    (1, '#ffa502'),
]
# (days since last visit under, border width), checked top down
RECENCY_BORDER_TIERS = [
    (7, 4),
    (30, 3),
]

CLUSTER_ICON_JS = """
function(cluster) {
    var count = cluster.getChildCount();
    var c = 'marker-cluster marker-cluster-';
    if (count < 10) { c += 'small'; }
    else if (count < 100) { c += 'medium'; }
    else { c += 'large'; }
    return L.divIcon({ html: '<div><span>' + count + '</span></div>', className: c, iconSize: new L.Point(40, 40) });
}
"""


@dataclass
class MarkerIcon:
    color: str
    size: int
    border_width: int
    badge: Optional[int] = None

    def html(self) -> str:
        badge = ''
        if self.badge is not None:
            badge = (
                '<div style="position:absolute;top:-8px;right:-8px;background:#2f3542;color:white;'
                'border-radius:50%;width:16px;height:16px;font-size:10px;display:flex;'
                f'align-items:center;justify-content:center;font-weight:bold;">{self.badge}</div>'
            )
        return (
            f'<div style="position:relative;background-color:{self.color};width:{self.size}px;'
            f'height:{self.size}px;border-radius:50%;border:{self.border_width}px solid white;'
            f'box-shadow:0 2px 4px rgba(0,0,0,0.3);">{badge}</div>'
        )

    def to_dict(self) -> Dict:
        return {
            'color': self.color,
            'size': self.size,
            'border_width': self.border_width,
            'badge': self.badge,
        }


@dataclass
class Marker:
    point_id: str
    latitude: float
    longitude: float
    world_offset: int
    icon: MarkerIcon


@dataclass
class Cluster:
    latitude: float
    longitude: float
    markers: List[Marker] = field(default_factory=list)
    x: float = 0.0
    y: float = 0.0

    @property
    def count(self) -> int:
        return len(self.markers)

    def to_dict(self) -> Dict:
        if self.count == 1:
            marker = self.markers[0]
            return {
                'type': 'marker',
                'point_id': marker.point_id,
                'latitude': marker.latitude,
                'longitude': marker.longitude,
                'world_offset': marker.world_offset,
                'icon': marker.icon.to_dict(),
            }
        return {
            'type': 'cluster',
            'latitude': self.latitude,
            'longitude': self.longitude,
            'count': self.count,
            'size_class': cluster_size_class(self.count),
            'point_ids': sorted({m.point_id for m in self.markers}),
        }


@dataclass
class ClusterResult:
    generation: int
    clusters: List[Cluster]
    superseded: bool = False


def category_color(category: Optional[str]) -> str:
    return CATEGORY_COLORS.get((category or '').lower(), DEFAULT_COLOR)


def cluster_size_class(count: int) -> str:
    if count < 10:
        return 'small'
    elif count < 100:
        return 'medium'
    return 'large'


def marker_icon(point: DataPoint, show_visit_frequency: bool = False, now=None) -> MarkerIcon:
    """Icon for one point; visit-frequency mode scales size, color and border"""
    color = category_color(point.category)
    size = MARKER_SIZE
    border_width = BORDER_WIDTH
    badge = None

    if show_visit_frequency:
        visits = point.visits
        size = max(MIN_MARKER_SIZE, min(MAX_MARKER_SIZE, 8 + visits * 2))

        for threshold, tier_color in VISIT_COLOR_TIERS:
            if visits > threshold:
                color = tier_color
                break

        last_visit = parse_timestamp(point.last_visit)
        if last_visit is not None:
            now = now if now is not None else utc_now()
            days_since = (now - last_visit) / pd.Timedelta(days=1)
            for max_days, width in RECENCY_BORDER_TIERS:
                if days_since < max_days:
                    border_width = width
                    break

        if point.visit_count is not None and point.visit_count > 1:
            badge = point.visit_count

    return MarkerIcon(color=color, size=size, border_width=border_width, badge=badge)


def build_markers(points: List[DataPoint], show_visit_frequency: bool = False, now=None) -> List[Marker]:
    """Three markers per point, one per world copy, tagged with the point id"""
    markers = []
    for point in points:
        icon = marker_icon(point, show_visit_frequency, now)
        for offset in WORLD_OFFSETS:
            markers.append(Marker(
                point_id=point.id,
                latitude=point.latitude,
                longitude=point.longitude + offset,
                world_offset=offset,
                icon=icon,
            ))
    return markers


def project(lat: float, lng: float, zoom: int):
    """Web Mercator pixel coordinates at the given zoom"""
    scale = TILE_SIZE * (2 ** zoom)
    lat = max(-MAX_MERCATOR_LAT, min(MAX_MERCATOR_LAT, lat))
    sin_lat = math.sin(math.radians(lat))
    x = (lng + 180.0) / 360.0 * scale
    y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * scale
    return x, y


def in_viewport(marker: Marker, viewport: Viewport, padding: float = VIEWPORT_PADDING) -> bool:
    lat_pad = (viewport.north - viewport.south) * padding
    lng_pad = (viewport.east - viewport.west) * padding
    return (viewport.south - lat_pad <= marker.latitude <= viewport.north + lat_pad
            and viewport.west - lng_pad <= marker.longitude <= viewport.east + lng_pad)


def compute_clusters(markers: List[Marker], viewport: Viewport,
                     radius: int = MAX_CLUSTER_RADIUS) -> List[Cluster]:
    """Greedy grid clustering of the markers relevant to the viewport.

    A marker joins the nearest existing cluster whose pixel centre is within
    ``radius``; otherwise it starts a new one. Cluster centres track the mean
    position of their members.
    """
    clusters: List[Cluster] = []
    grid: Dict[tuple, List[Cluster]] = {}

    for marker in markers:
        if not in_viewport(marker, viewport):
            continue
        x, y = project(marker.latitude, marker.longitude, viewport.zoom)
        cell = (int(x // radius), int(y // radius))

        nearest = None
        nearest_distance = None
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for cluster in grid.get((cell[0] + dx, cell[1] + dy), []):
                    distance = math.hypot(cluster.x - x, cluster.y - y)
                    if distance <= radius and (nearest_distance is None or distance < nearest_distance):
                        nearest = cluster
                        nearest_distance = distance

        if nearest is None:
            cluster = Cluster(latitude=marker.latitude, longitude=marker.longitude,
                              markers=[marker], x=x, y=y)
            clusters.append(cluster)
            grid.setdefault(cell, []).append(cluster)
            continue

        n = nearest.count
        nearest.markers.append(marker)
        nearest.x = (nearest.x * n + x) / (n + 1)
        nearest.y = (nearest.y * n + y) / (n + 1)
        nearest.latitude = (nearest.latitude * n + marker.latitude) / (n + 1)
        nearest.longitude = (nearest.longitude * n + marker.longitude) / (n + 1)

    return clusters


def fit_bounds(markers: List[Marker], padding: float = FIT_PADDING):
    """[[south, west], [north, east]] around the real-world markers, or None.

    Wrap copies are ignored, and a single point never triggers framing.
    """
    primary = [m for m in markers if m.world_offset == 0]
    if len(primary) <= 1:
        return None

    south = min(m.latitude for m in primary)
    north = max(m.latitude for m in primary)
    west = min(m.longitude for m in primary)
    east = max(m.longitude for m in primary)
    lat_pad = (north - south) * padding
    lng_pad = (east - west) * padding
    return [[south - lat_pad, west - lng_pad], [north + lat_pad, east + lng_pad]]


def create_popup_content(point: DataPoint) -> str:
    def format_date(value):
        parsed = parse_timestamp(value)
        return parsed.strftime('%Y-%m-%d') if parsed is not None else html.escape(str(value))

    parts = [f"<h3>{html.escape(point.title)}</h3>"]
    if point.description:
        parts.append(f"<p>{html.escape(point.description)}</p>")
    parts.append(f"<b>Coordinates:</b> {point.latitude:.6f}, {point.longitude:.6f}<br>")
    if point.category:
        parts.append(f"<b>Category:</b> {html.escape(point.category)}<br>")
    if point.timestamp:
        parts.append(f"<b>Date:</b> {format_date(point.timestamp)}<br>")
    if point.visit_count:
        parts.append(f"<b>Visit Count:</b> {point.visit_count}<br>")
    if point.last_visit:
        parts.append(f"<b>Last Visit:</b> {format_date(point.last_visit)}<br>")
    if point.extra:
        rows = ''.join(
            f"<div><b>{html.escape(str(k))}:</b> {html.escape(str(v))}</div>"
            for k, v in point.extra.items()
        )
        parts.append(f"<details><summary>Additional Data</summary>{rows}</details>")
    return ''.join(parts)


class LocationMapViewer:
    """Interactive clustered map of the filtered points"""

    def __init__(self, points: Optional[List[DataPoint]] = None, show_visit_frequency: bool = False):
        self.lock = threading.Lock()
        self.points: List[DataPoint] = []
        self.markers: List[Marker] = []
        self.show_visit_frequency = show_visit_frequency
        self.generation = 0
        self.published_generation = 0
        self.current_clusters: List[Cluster] = []
        if points is not None:
            self.load_points(points, show_visit_frequency)

    def load_points(self, points: List[DataPoint], show_visit_frequency: bool = False, now=None):
        """Replace every marker wholesale; clusters from the old set are dropped"""
        markers = build_markers(points, show_visit_frequency, now)
        with self.lock:
            self.points = list(points)
            self.markers = markers
            self.show_visit_frequency = show_visit_frequency
            self.generation += 1
            self.published_generation = self.generation
            self.current_clusters = []
        logger.debug(f"Loaded {len(points)} points as {len(markers)} markers")

    def recompute(self, viewport: Viewport) -> ClusterResult:
        """Re-cluster for a new viewport; the newest request always wins.

        A computation that finishes after a newer one (or after the point
        set was replaced) is reported as superseded and not published.
        """
        with self.lock:
            self.generation += 1
            generation = self.generation
            markers = self.markers

        clusters = compute_clusters(markers, viewport)

        with self.lock:
            if generation < self.published_generation or markers is not self.markers:
                return ClusterResult(generation, clusters, superseded=True)
            self.published_generation = generation
            self.current_clusters = clusters
        return ClusterResult(generation, clusters)

    def bounds(self):
        return fit_bounds(self.markers)

    def create_map(self, center_lat=None, center_lon=None, zoom_level=2):
        """Build the folium map; None if there is nothing to show"""
        if not self.points:
            logger.info("No valid coordinates to map")
            return None

        explicit_center = center_lat is not None and center_lon is not None
        if not explicit_center:
            center_lat = sum(p.latitude for p in self.points) / len(self.points)
            center_lon = sum(p.longitude for p in self.points) / len(self.points)

        m = folium.Map(
            location=[center_lat, center_lon],
            zoom_start=zoom_level,
            min_zoom=3,
            tiles='OpenStreetMap'
        )

        cluster_layer = MarkerCluster(
            name='Locations',
            icon_create_function=CLUSTER_ICON_JS,
            max_cluster_radius=MAX_CLUSTER_RADIUS,
            chunked_loading=True,
            spiderfy_on_max_zoom=True,
            show_coverage_on_hover=False,
            zoom_to_bounds_on_click=True,
        ).add_to(m)

        # build_markers emits one run of WORLD_OFFSETS markers per point, in point order
        for index, marker in enumerate(self.markers):
            point = self.points[index // len(WORLD_OFFSETS)]
            size = marker.icon.size
            folium.Marker(
                location=[marker.latitude, marker.longitude],
                popup=folium.Popup(create_popup_content(point), max_width=300),
                icon=folium.DivIcon(
                    html=marker.icon.html(),
                    icon_size=(size, size),
                    icon_anchor=(size // 2, size // 2),
                    class_name='custom-marker',
                ),
                tooltip=point.title,
            ).add_to(cluster_layer)

        # only re-frame when no explicit centre was requested
        bounds = self.bounds()
        if bounds and not explicit_center:
            m.fit_bounds(bounds)

        return m
