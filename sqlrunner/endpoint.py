"""Local HTTP endpoint executing one pooled query per request."""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from flask import Flask, jsonify
from sqlalchemy.engine import Engine
from werkzeug.serving import BaseWSGIServer, make_server

from sqlrunner.database import TIMESTAMP_QUERY, execute_scalar

logger = logging.getLogger(__name__)


def create_app(engine: Engine) -> Flask:
	app = Flask(__name__)
	# Pool is owned by the runner and shared by every request thread
	app.config['db_engine'] = engine

	@app.get("/query")
	def query() -> Any:
		engine = app.config['db_engine']
		try:
			value = execute_scalar(engine, TIMESTAMP_QUERY)
		except Exception as e:
			logger.error(f"Query endpoint failed: {e}")
			return jsonify({"error": str(e) or e.__class__.__name__}), 500
		return jsonify({"timestamp": str(value), "status": "success"})

	@app.get("/health")
	def health() -> Any:
		return jsonify({"status": "ok"})

	return app


class EndpointServer:
	"""Serves the query endpoint from a background thread."""

	def __init__(self, app: Flask, host: str = "127.0.0.1", port: int = 8080) -> None:
		self.app = app
		self.host = host
		self.port = port
		self._server: Optional[BaseWSGIServer] = None
		self._thread: Optional[threading.Thread] = None

	@property
	def url(self) -> str:
		return f"http://{self.host}:{self.port}/query"

	def start(self) -> None:
		if self._thread and self._thread.is_alive():
			return
		self._server = make_server(self.host, self.port, self.app, threaded=True)
		# Port 0 binds an ephemeral port
		self.port = self._server.server_port
		self._thread = threading.Thread(
			target=self._server.serve_forever,
			name="QueryEndpoint",
			daemon=True,
		)
		self._thread.start()
		logger.info(f"Query endpoint listening on {self.url}")

	def stop(self) -> None:
		if self._server is None:
			return
		self._server.shutdown()
		self._server.server_close()
		if self._thread:
			self._thread.join(timeout=2.0)
		self._server = None
		self._thread = None
		logger.info("Query endpoint stopped")
