from flask import Blueprint, current_app, request, session, jsonify

route_builder_bp = Blueprint('route_builder', __name__)

def _runtime():
    return current_app.extensions['route_builder']

def _unauthorized():
    return jsonify({'status': 'error', 'message': 'Unauthorized'}), 401

def _respond(state, posted):
    # Only notices posted by this request's action decide the status
    problems = [n['message'] for n in posted if n['kind'] == 'validation']
    if problems:
        return jsonify({'status': 'error', 'message': problems[0], 'state': state}), 400
    return jsonify({'status': 'success', 'state': state})

def _apply(action=None):
    return _respond(*_runtime().apply(session['uid'], action))

def _coordinates(data):
    try:
        return float(data.get('lat')), float(data.get('lng'))
    except (TypeError, ValueError):
        return None

@route_builder_bp.route('/api/route_builder/state', methods=['GET'])
def api_route_builder_state():
    if 'uid' not in session:
        return _unauthorized()
    try:
        state = _runtime().run(session['uid'])
        return jsonify({'status': 'success', 'state': state})
    except Exception as e:
        current_app.logger.exception('Loading route builder state failed')
        return jsonify({'status': 'error', 'message': str(e)}), 500

@route_builder_bp.route('/api/select_route', methods=['POST'])
def api_select_route():
    if 'uid' not in session:
        return _unauthorized()
    try:
        data = request.get_json(silent=True) or {}
        route_id = data.get('route_id') or None
        return _apply(lambda s: s.select_route(route_id))
    except Exception as e:
        current_app.logger.exception('Selecting route failed')
        return jsonify({'status': 'error', 'message': str(e)}), 500

@route_builder_bp.route('/api/add_route', methods=['POST'])
def api_add_route():
    if 'uid' not in session:
        return _unauthorized()
    try:
        data = request.get_json(silent=True) or {}
        route_name = (data.get('route_name') or '').strip()
        if not route_name:
            return jsonify({'status': 'error', 'message': 'Route Name is required'}), 400
        return _apply(lambda s: s.create_route(route_name))
    except Exception as e:
        current_app.logger.exception('Adding route failed')
        return jsonify({'status': 'error', 'message': str(e)}), 500

@route_builder_bp.route('/api/delete_route/<route_id>', methods=['POST'])
def api_delete_route(route_id):
    if 'uid' not in session:
        return _unauthorized()
    try:
        return _apply(lambda s: s.delete_route(route_id))
    except Exception as e:
        current_app.logger.exception('Deleting route %s failed', route_id)
        return jsonify({'status': 'error', 'message': str(e)}), 500

@route_builder_bp.route('/api/stop_draft/map_click', methods=['POST'])
def api_stop_draft_map_click():
    if 'uid' not in session:
        return _unauthorized()
    try:
        coords = _coordinates(request.get_json(silent=True) or {})
        if coords is None:
            return jsonify({'status': 'error', 'message': 'lat and lng are required'}), 400
        lat, lng = coords
        return _apply(lambda s: s.map_click(lat, lng))
    except Exception as e:
        current_app.logger.exception('Opening stop draft failed')
        return jsonify({'status': 'error', 'message': str(e)}), 500

@route_builder_bp.route('/api/stop_draft/geocoder_result', methods=['POST'])
def api_stop_draft_geocoder_result():
    if 'uid' not in session:
        return _unauthorized()
    try:
        data = request.get_json(silent=True) or {}
        coords = _coordinates(data)
        if coords is None:
            return jsonify({'status': 'error', 'message': 'lat and lng are required'}), 400
        lat, lng = coords
        label = data.get('label', '')
        return _apply(lambda s: s.geocoder_result(lat, lng, label))
    except Exception as e:
        current_app.logger.exception('Opening stop draft failed')
        return jsonify({'status': 'error', 'message': str(e)}), 500

@route_builder_bp.route('/api/stop_draft/discard', methods=['POST'])
def api_stop_draft_discard():
    if 'uid' not in session:
        return _unauthorized()
    try:
        return _apply(lambda s: s.discard_draft())
    except Exception as e:
        return jsonify({'status': 'error', 'message': str(e)}), 500

@route_builder_bp.route('/api/add_stop', methods=['POST'])
def api_add_stop():
    if 'uid' not in session:
        return _unauthorized()
    try:
        data = request.get_json(silent=True) or {}
        stop_name = data.get('stop_name')
        return _apply(lambda s: s.commit_draft(stop_name))
    except Exception as e:
        current_app.logger.exception('Adding stop failed')
        return jsonify({'status': 'error', 'message': str(e)}), 500

@route_builder_bp.route('/api/delete_stop/<stop_id>', methods=['POST'])
def api_delete_stop(stop_id):
    if 'uid' not in session:
        return _unauthorized()
    try:
        return _apply(lambda s: s.delete_stop(stop_id))
    except Exception as e:
        current_app.logger.exception('Deleting stop %s failed', stop_id)
        return jsonify({'status': 'error', 'message': str(e)}), 500

@route_builder_bp.route('/api/add_route_stop', methods=['POST'])
def api_add_route_stop():
    if 'uid' not in session:
        return _unauthorized()
    try:
        data = request.get_json(silent=True) or {}
        stop_id = data.get('stop_id')
        if not stop_id:
            return jsonify({'status': 'error', 'message': 'stop_id is required'}), 400
        return _apply(lambda s: s.add_stop(stop_id))
    except Exception as e:
        current_app.logger.exception('Adding stop to route failed')
        return jsonify({'status': 'error', 'message': str(e)}), 500

@route_builder_bp.route('/api/remove_route_stop/<key>', methods=['POST'])
def api_remove_route_stop(key):
    if 'uid' not in session:
        return _unauthorized()
    try:
        return _apply(lambda s: s.remove_stop(key))
    except Exception as e:
        current_app.logger.exception('Removing route stop %s failed', key)
        return jsonify({'status': 'error', 'message': str(e)}), 500

@route_builder_bp.route('/api/reorder_route_stops', methods=['POST'])
def api_reorder_route_stops():
    if 'uid' not in session:
        return _unauthorized()
    try:
        data = request.get_json(silent=True) or {}
        try:
            from_index = int(data.get('from_index'))
            to_index = int(data.get('to_index'))
        except (TypeError, ValueError):
            return jsonify({'status': 'error', 'message': 'from_index and to_index are required'}), 400
        return _apply(lambda s: s.reorder(from_index, to_index))
    except Exception as e:
        current_app.logger.exception('Reordering route stops failed')
        return jsonify({'status': 'error', 'message': str(e)}), 500

@route_builder_bp.route('/api/geocode', methods=['GET'])
def api_geocode():
    if 'uid' not in session:
        return _unauthorized()
    try:
        query = request.args.get('q', '')
        geocoder = current_app.extensions['geocoder']
        results = _runtime().call(geocoder.search, query)
        return jsonify({'status': 'success', 'results': [r.to_dict() for r in results]})
    except Exception as e:
        current_app.logger.warning('Address search failed: %s', e)
        return jsonify({'status': 'error', 'message': str(e)}), 500
