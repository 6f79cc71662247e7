from flask import Flask, render_template_string, request, jsonify, send_file
import os
import uuid
import logging
import threading
from werkzeug.utils import secure_filename

from app_config import load_config, configure_logging
from data_exporter import EXPORT_FORMATS, write_export
from geo_utils import APIError, PlaceSuggestionCache, suggest_places
from location_map_viewer import LocationMapViewer
from location_models import ExportError, FilterOptions, TimelineImportError, Viewport
from location_processor import LocationProcessor
from point_filters import filter_points
from point_store import TimelineStore
from statistics_aggregator import compute_statistics

config = load_config()
configure_logging(config['log_level'])
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['OUTPUT_FOLDER'] = config['output_folder']
app.config['MAX_CONTENT_LENGTH'] = config['max_content_length']
app.config['GEOAPIFY_KEY'] = config['geoapify_key']
app.config['SEARCH_MIN_LENGTH'] = config['search_min_length']

store = TimelineStore()
search_cache = PlaceSuggestionCache(config['search_cache_file'])

# Cluster state follows the store; rebuilt whenever the store version moves
map_viewer = LocationMapViewer()
map_viewer_version = -1
map_viewer_lock = threading.Lock()

INDEX_TEMPLATE = """
<!DOCTYPE html>
<html>
<head><title>Timeline Map Viewer</title></head>
<body>
  <h2>Timeline Map Viewer</h2>
  <form action="/upload" method="post" enctype="multipart/form-data">
    <input type="file" name="file" accept=".csv,.json">
    <button type="submit">Import</button>
  </form>
  <p>{{ total }} points loaded{% if source %} from {{ source }}{% endif %}, {{ filtered }} after filters.</p>
  <p><a href="/export?format=csv">Export CSV</a> | <a href="/export?format=json">Export JSON</a></p>
  <iframe src="/map" style="width:100%;height:80vh;border:0;"></iframe>
</body>
</html>
"""


def current_map_viewer():
    """Map viewer loaded with the current filtered set"""
    global map_viewer_version
    version, points, filters = store.snapshot()
    with map_viewer_lock:
        if version != map_viewer_version:
            map_viewer.load_points(filter_points(points, filters), filters.show_visit_frequency)
            map_viewer_version = version
    return map_viewer


def json_object_body():
    """Request JSON when it is an object, otherwise an empty dict"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@app.route('/')
def index():
    _, points, filters = store.snapshot()
    return render_template_string(
        INDEX_TEMPLATE,
        total=len(points),
        filtered=len(filter_points(points, filters)),
        source=store.source_name,
    )


@app.route('/upload', methods=['POST'])
def upload():
    """Import a CSV or JSON file, replacing the loaded points on success"""
    if 'file' not in request.files:
        return jsonify({'success': False, 'error': 'No file uploaded'}), 400

    file = request.files['file']
    if file.filename == '':
        return jsonify({'success': False, 'error': 'No file selected'}), 400

    filename = secure_filename(file.filename) or file.filename
    processor = LocationProcessor(task_id=str(uuid.uuid4()))

    try:
        points = processor.process_file(file.filename, file.read())
    except TimelineImportError as e:
        # the previously loaded points stay untouched
        processor.log(f"Import failed: {e.message}", "ERROR")
        return jsonify({
            'success': False,
            'error': e.message,
            'error_type': e.error_type,
            'diagnostics': processor.diagnostics,
        }), 400

    store.replace_points(points, filename)

    return jsonify({
        'success': True,
        'task_id': processor.task_id,
        'points': len(points),
        'latitude_range': [min(p.latitude for p in points), max(p.latitude for p in points)],
        'longitude_range': [min(p.longitude for p in points), max(p.longitude for p in points)],
        'stats': processor.stats,
        'diagnostics': processor.diagnostics,
    })


@app.route('/clear', methods=['POST'])
def clear():
    store.clear()
    return jsonify({'success': True})


@app.route('/filters', methods=['GET', 'POST'])
def filters():
    if request.method == 'POST':
        try:
            options = FilterOptions.from_dict(request.get_json(silent=True) or {})
        except (TypeError, ValueError) as e:
            return jsonify({'success': False, 'error': f'Invalid filters: {e}'}), 400
        store.set_filters(options)

    return jsonify({
        'filters': store.filters.to_dict(),
        'available_categories': store.available_categories(),
    })


@app.route('/points')
def points():
    _, all_points, options = store.snapshot()
    filtered = filter_points(all_points, options)
    return jsonify({
        'total_points': len(all_points),
        'filtered_points': len(filtered),
        'data': [p.to_dict() for p in filtered],
    })


@app.route('/statistics')
def statistics():
    return jsonify(compute_statistics(store.filtered_points()))


@app.route('/map')
def map_view():
    """Clustered folium map of the filtered points"""
    lat = request.args.get('lat', type=float)
    lon = request.args.get('lon', type=float)
    zoom = request.args.get('zoom', default=2, type=int)

    map_obj = current_map_viewer().create_map(center_lat=lat, center_lon=lon, zoom_level=zoom)
    if map_obj is None:
        return '<p>No data loaded. Please import a CSV or JSON file first.</p>'
    return map_obj.get_root().render()


@app.route('/clusters')
def clusters():
    """Clusters for the visible region; called again on every pan/zoom"""
    try:
        viewport = Viewport(
            south=float(request.args['south']),
            west=float(request.args['west']),
            north=float(request.args['north']),
            east=float(request.args['east']),
            zoom=int(request.args.get('zoom', 2)),
        )
    except (KeyError, ValueError):
        return jsonify({'error': 'south, west, north, east and zoom are required numbers'}), 400
    if not viewport.is_finite():
        return jsonify({'error': 'Viewport bounds must be finite'}), 400

    viewer = current_map_viewer()
    result = viewer.recompute(viewport)
    return jsonify({
        'generation': result.generation,
        'superseded': result.superseded,
        'clusters': [c.to_dict() for c in result.clusters],
        'fit_bounds': viewer.bounds(),
    })


@app.route('/export')
def export():
    """Write the filtered points to a file and send it as a download"""
    export_format = request.args.get('format', 'csv').lower()
    include_metadata = request.args.get('metadata', '1') not in ('0', 'false', 'no')
    if export_format not in EXPORT_FORMATS:
        return jsonify({'success': False, 'error': f'Unsupported export format: {export_format}'}), 400

    _, all_points, options = store.snapshot()
    filtered = filter_points(all_points, options)

    try:
        path = write_export(
            filtered, export_format, app.config['OUTPUT_FOLDER'],
            filters=options, total_points=len(all_points), include_metadata=include_metadata,
        )
    except ExportError as e:
        logger.warning(f"Export failed: {e.message}")
        return jsonify({'success': False, 'error': e.message, 'error_type': 'ExportError'}), 400

    return send_file(os.path.abspath(path), as_attachment=True, download_name=os.path.basename(path))


@app.route('/boundaries', methods=['GET', 'POST'])
def boundaries():
    if request.method == 'POST':
        data = json_object_body()
        coordinates = data.get('coordinates')
        if not isinstance(coordinates, list) or len(coordinates) < 3:
            return jsonify({'success': False, 'error': 'A boundary needs at least three coordinates'}), 400
        name = (data.get('name') or '').strip() or f"Boundary {len(store.boundaries) + 1}"
        boundary = store.add_boundary(name, coordinates, data.get('color') or '#3388ff')
        return jsonify({'success': True, 'boundary': boundary.to_dict()}), 201

    return jsonify({'boundaries': [b.to_dict() for b in store.boundaries]})


@app.route('/boundaries/<boundary_id>', methods=['PATCH', 'DELETE'])
def boundary_detail(boundary_id):
    if request.method == 'DELETE':
        if not store.delete_boundary(boundary_id):
            return jsonify({'success': False, 'error': 'Boundary not found'}), 404
        return jsonify({'success': True})

    data = json_object_body()
    boundary = store.rename_boundary(boundary_id, data.get('name'))
    if boundary is None:
        return jsonify({'success': False, 'error': 'Boundary not found or empty name'}), 404
    return jsonify({'success': True, 'boundary': boundary.to_dict()})


@app.route('/search')
def search():
    """Place-name suggestions for the search box"""
    query = request.args.get('q', '')
    try:
        suggestions = suggest_places(
            query,
            app.config['GEOAPIFY_KEY'],
            cache=search_cache,
            min_length=app.config['SEARCH_MIN_LENGTH'],
        )
    except APIError as e:
        logger.warning(f"Place search failed: {e}")
        return jsonify({'suggestions': [], 'error': str(e)}), 502
    return jsonify({'suggestions': suggestions})


@app.route('/health')
def health_check():
    """Health check endpoint"""
    return jsonify({
        'status': 'healthy',
        'points_loaded': len(store.points),
        'features': [
            'CSV, JSON, GeoJSON and semantic segments import',
            'Filtering and statistics',
            'Clustered world-wrapping map',
            'CSV and JSON export'
        ]
    })


if __name__ == '__main__':
    port = int(config.get('port', 5000))
    logger.info(f"Timeline Map Viewer on http://localhost:{port}")
    app.run(host='0.0.0.0', port=port, debug=False)
