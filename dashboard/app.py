import logging
import time
from threading import Thread

from flask import Flask, jsonify

logger = logging.getLogger(__name__)


def create_app(reporter, stats=None):
    """Flask app exposing the consumer's running totals."""
    app = Flask(__name__)

    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'timestamp': time.time(),
            'message': 'Dashboard is running and reading metrics from the order consumer'
        })

    @app.route('/metrics')
    def get_metrics():
        snapshot = reporter.snapshot()
        metrics = {
            'total_orders': snapshot['order_count'],
            'running_average': snapshot['running_average'],
            'total_price': snapshot['total_price'],
        }
        if stats is not None:
            delivery = stats.snapshot()
            delivery['success_rate'] = round(delivery['success_rate'], 1)
            metrics.update(delivery)
        metrics['last_updated'] = time.time()
        return jsonify(metrics)

    return app


def serve_in_background(reporter, stats, port, host='0.0.0.0'):
    app = create_app(reporter, stats)
    thread = Thread(
        target=app.run,
        kwargs={'host': host, 'port': port, 'debug': False, 'use_reloader': False},
        daemon=True,
    )
    thread.start()
    logger.info("Metrics dashboard listening on %s:%d", host, port)
    return thread
