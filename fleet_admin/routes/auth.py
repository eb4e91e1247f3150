from flask import Blueprint, current_app, session, request, jsonify
from firebase_admin import auth

auth_bp = Blueprint('auth', __name__)

@auth_bp.route('/session_login', methods=['POST'])
def session_login():
    data = request.get_json(silent=True) or {}
    id_token = data.get('idToken')
    if not id_token:
        return jsonify({'status': 'error', 'message': 'idToken is required'}), 400

    try:
        decoded_token = auth.verify_id_token(id_token, clock_skew_seconds=10)
    except Exception as e:
        current_app.logger.warning('Error verifying token: %s', e)
        return jsonify({'status': 'error', 'message': 'Invalid token'}), 401

    session['user'] = decoded_token.get('email', '')
    session['uid'] = decoded_token['uid']

    remember_me = data.get('rememberMe', False)
    if remember_me:
        session.permanent = True

    return jsonify({'status': 'success'})

@auth_bp.route('/logout')
def logout():
    uid = session.pop('uid', None)
    session.pop('user', None)
    if uid is not None:
        current_app.extensions['route_builder'].end_session(uid)
    return jsonify({'status': 'success'})
