"""
Flask API for choosing and joining a Wi-Fi network from a browser.
Includes CSRF protections and server-side validation.
"""

import logging
import os

from flask import Flask, jsonify, request, session
from itsdangerous import BadSignature, URLSafeTimedSerializer

from wifilink.errors import WifiError
from wifilink.provisioning.service import ConnectInProgressError, WifiService
from wifilink.wifi.profile import MAX_PASSPHRASE_LEN, MIN_PASSPHRASE_LEN

logger = logging.getLogger(__name__)

MAX_SSID_LEN = 32


def create_app(service: WifiService) -> Flask:
    """
    Create and configure Flask application.

    Args:
        service: WifiService the endpoints operate on

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)

    app.config['SECRET_KEY'] = os.environ.get(
        'SECRET_KEY', 'wifilink-dev-key')
    # Disabled for local network access
    app.config['SESSION_COOKIE_SECURE'] = False
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'

    serializer = URLSafeTimedSerializer(app.config['SECRET_KEY'])
    app.wifi_service = service

    @app.before_request
    def initialize_session():
        """Initialize CSRF token in session."""
        if 'csrf_token' not in session:
            session['csrf_token'] = serializer.dumps(
                {'nonce': os.urandom(16).hex()})

    def verify_csrf_token(token: str) -> bool:
        try:
            serializer.loads(token, max_age=3600)  # Valid for 1 hour
            return True
        except BadSignature:
            return False

    def csrf_failure(data: dict, endpoint: str):
        token = data.get('csrf_token')
        if not token or not verify_csrf_token(token):
            logger.warning(f"CSRF token verification failed for {endpoint}")
            return jsonify({'error': 'Invalid CSRF token'}), 403
        return None

    @app.route('/api/state', methods=['GET'])
    def state():
        """Nearby networks, connection progress and a CSRF token."""
        body = app.wifi_service.snapshot()
        body['csrf_token'] = session['csrf_token']
        return jsonify(body)

    @app.route('/api/refresh', methods=['POST'])
    def refresh():
        data = request.get_json(silent=True) or {}
        failure = csrf_failure(data, '/api/refresh')
        if failure:
            return failure

        try:
            app.wifi_service.refresh()
        except WifiError as e:
            logger.error(f"Refresh failed: {e}")
            return jsonify({'error': str(e)}), 500
        return jsonify(app.wifi_service.snapshot())

    @app.route('/api/connect', methods=['POST'])
    def connect():
        """
        Start a connection attempt.

        Expected JSON:
            {
                "ssid": "network-name",
                "passphrase": "optional",
                "identity": "optional, requires passphrase",
                "csrf_token": "token"
            }
        """
        data = request.get_json(silent=True) or {}
        failure = csrf_failure(data, '/api/connect')
        if failure:
            return failure

        ssid = (data.get('ssid') or '').strip()
        passphrase = data.get('passphrase') or ''
        identity = (data.get('identity') or '').strip()

        if not ssid:
            logger.warning("Connect attempt with empty SSID")
            return jsonify({'error': 'SSID is required'}), 400
        if len(ssid) > MAX_SSID_LEN:
            logger.warning(f"SSID too long: {len(ssid)} characters")
            return jsonify(
                {'error': f'SSID must be {MAX_SSID_LEN} characters or less'}), 400
        if identity and not passphrase:
            return jsonify({'error': 'Identity requires a password'}), 400
        if passphrase and not identity and not (
                MIN_PASSPHRASE_LEN <= len(passphrase) <= MAX_PASSPHRASE_LEN):
            logger.warning(f"Passphrase length {len(passphrase)} rejected")
            return jsonify({'error': (
                f'Passphrase must be {MIN_PASSPHRASE_LEN} to '
                f'{MAX_PASSPHRASE_LEN} characters')}), 400

        secrets = [s for s in (passphrase, identity) if s]
        try:
            app.wifi_service.request_connect(ssid, *secrets)
        except ConnectInProgressError as e:
            return jsonify({'error': str(e)}), 409

        logger.info(f"Connection to {ssid} started")
        return jsonify({'connecting': ssid}), 202

    @app.route('/health', methods=['GET'])
    def health():
        """Health check endpoint."""
        return jsonify({'status': 'ok'})

    return app
