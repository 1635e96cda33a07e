"""JSON-RPC 2.0 stdio server for an image browser host.

The host keeps one long-lived process and talks to it with line-delimited
JSON-RPC over stdin/stdout.

Protocol:
    - One JSON object per line on stdin (requests)
    - One JSON object per line on stdout (responses + notifications)
    - stderr is reserved for logging / diagnostics

Request format:
    {"jsonrpc": "2.0", "id": 1, "method": "tree/children", "params": {"uri": "face:///"}}

Response format:
    {"jsonrpc": "2.0", "id": 1, "result": {...}}

Error format:
    {"jsonrpc": "2.0", "id": 1, "error": {"code": -1, "message": "..."}}

Supported methods:
    settings            - Settings report text + index status (one-shot)
    faces/lookup        - Face rectangles for one image (one-shot)
    faces/labels        - Labels with face counts (one-shot)
    faces/clusters      - Unlabelled clusters, largest first (one-shot)
    tree/entry-points   - The face tree root (one-shot)
    tree/info           - File info for a face:/// URI (one-shot)
    tree/children       - Children of a face:/// URI (deferred, cancellable)
    tree/cancel         - Cancel a pending tree/children request by id or uri (one-shot)
    tree/write-metadata, tree/read-metadata, tree/rename, tree/copy,
    tree/reorder, tree/remove
                        - Accepted, no effect (one-shot)
    overlay/render      - Decode an image, draw its faces, return base64 JPEG
    shutdown            - Gracefully shut down the server (one-shot)
"""
from __future__ import annotations

import base64
import io
import json
import logging
import os
import sys
import threading
from concurrent.futures import Future
from typing import Any, TextIO

log = logging.getLogger(__name__)

_out: TextIO = sys.stdout

# Browse results are sent from the worker thread; keep lines whole.
_send_lock = threading.Lock()


def _send(obj: dict[str, Any]) -> None:
    """Write a JSON-RPC message to the protocol stream (one line, thread-safe)."""
    line = json.dumps(obj, default=str, separators=(",", ":"))
    with _send_lock:
        _out.write(line + "\n")
        _out.flush()


def _send_result(req_id: int | str, result: Any) -> None:
    _send({"jsonrpc": "2.0", "id": req_id, "result": result})


def _send_error(req_id: int | str | None, code: int, message: str) -> None:
    _send({"jsonrpc": "2.0", "id": req_id, "error": {"code": code, "message": message}})


def _send_notification(method: str, params: Any) -> None:
    _send({"jsonrpc": "2.0", "method": method, "params": params})


# ── Lazy singletons ──────────────────────────────────────────────────────────

_settings = None
_source = None
_init_lock = threading.Lock()


def _get_settings():
    global _settings
    with _init_lock:
        if _settings is None:
            from facemarks.settings import Settings
            _settings = Settings.from_env()
        return _settings


def _get_index():
    from facemarks.db.connection import get_index
    settings = _get_settings()
    with _init_lock:
        return get_index(settings)


def _get_source():
    """Get or create the shared face tree source (thread-safe)."""
    global _source
    index = _get_index()
    with _init_lock:
        if _source is None:
            from facemarks.tree.source import FaceFileSource
            _source = FaceFileSource(index)
        return _source


# ── State for cancellable browses ────────────────────────────────────────────

# request id -> (uri, cancel event); only tree/cancel sets an event
_browse_cancel: dict[Any, tuple[str, threading.Event]] = {}


# ── Method handlers ──────────────────────────────────────────────────────────

def _handle_settings(params: dict) -> dict:
    from facemarks.settings import settings_report

    settings = _get_settings()
    index = _get_index()
    return {
        "text": settings_report(settings, index),
        "dbPath": str(settings.db_path),
        "available": index.available,
    }


def _handle_faces_lookup(params: dict) -> dict:
    image_path = params["imagePath"]
    faces = _get_index().lookup_by_path(image_path)
    return {"faces": [a.to_dict() for a in faces]}


def _handle_faces_labels(params: dict) -> dict:
    labels = _get_index().enumerate_labels()
    return {"labels": [{"label": label, "count": count} for label, count in labels]}


def _handle_faces_clusters(params: dict) -> dict:
    index = _get_index()
    clusters = index.enumerate_unknown_clusters()
    return {
        "enabled": index.unknown_clusters,
        "clusters": [{"cluster_id": gid, "count": count} for gid, count in clusters],
    }


def _handle_tree_entry_points(params: dict) -> dict:
    return {"entries": [node.file_info() for node in _get_source().get_entry_points()]}


def _handle_tree_info(params: dict) -> dict:
    return _get_source().get_file_info(params["uri"])


def _handle_tree_children(req_id: int | str, params: dict) -> None:
    """Enumerate a face tree directory on the browse worker; reply when complete."""
    uri = params["uri"]
    cancel_event = threading.Event()
    _browse_cancel[req_id] = (uri, cancel_event)

    future = _get_source().enumerate_children(uri, cancel_event)

    def _done(fut: "Future[list]") -> None:
        _browse_cancel.pop(req_id, None)
        try:
            children = fut.result()
        except Exception as exc:
            _send_error(req_id, -1, f"Browse failed: {exc}")
            return
        cancelled = cancel_event.is_set()
        if cancelled:
            children = []
        _send_result(req_id, {
            "uri": uri,
            "cancelled": cancelled,
            "children": [child.file_info() for child in children],
        })

    future.add_done_callback(_done)


def _handle_tree_cancel(params: dict) -> dict:
    """Cancel one pending browse by request ``id``, or every pending browse of ``uri``."""
    if "id" in params:
        pending = _browse_cancel.get(params["id"])
        events = [pending[1]] if pending else []
    else:
        uri = params.get("uri", "")
        events = [evt for pending_uri, evt in list(_browse_cancel.values()) if pending_uri == uri]
    for evt in events:
        evt.set()
    return {"cancelled": bool(events)}


def _handle_tree_noop(params: dict) -> dict:
    return {"ok": True}


def _handle_overlay_render(params: dict) -> dict:
    """Decode an image, bake its faces in and return a base64 JPEG."""
    from facemarks.overlay.viewer import FaceOverlay
    from facemarks.readers.standard import load

    image_path = params["imagePath"]
    max_size = params.get("maxSize")
    loaded = load(image_path, requested_size=max_size)
    overlay = FaceOverlay(_get_index(), enabled=params.get("enabled", True))
    drawn = overlay.bake(loaded.surface, image_path, loaded.original_size)

    buf = io.BytesIO()
    loaded.surface.save(buf, format="JPEG", quality=90)
    width, height = loaded.surface.size
    return {
        "data": base64.b64encode(buf.getvalue()).decode("ascii"),
        "faces": drawn,
        "width": width,
        "height": height,
        "originalWidth": loaded.original_size[0],
        "originalHeight": loaded.original_size[1],
    }


# ── Method dispatch ──────────────────────────────────────────────────────────

_SYNC_METHODS: dict[str, Any] = {
    "settings": _handle_settings,
    "faces/lookup": _handle_faces_lookup,
    "faces/labels": _handle_faces_labels,
    "faces/clusters": _handle_faces_clusters,
    "tree/entry-points": _handle_tree_entry_points,
    "tree/info": _handle_tree_info,
    "tree/cancel": _handle_tree_cancel,
    "tree/write-metadata": _handle_tree_noop,
    "tree/read-metadata": _handle_tree_noop,
    "tree/rename": _handle_tree_noop,
    "tree/copy": _handle_tree_noop,
    "tree/reorder": _handle_tree_noop,
    "tree/remove": _handle_tree_noop,
    "overlay/render": _handle_overlay_render,
}

# Methods that send their own result/error once the work completes.
_ASYNC_METHODS: dict[str, Any] = {
    "tree/children": _handle_tree_children,
}


def _shutdown() -> None:
    global _source
    for _, evt in list(_browse_cancel.values()):
        evt.set()
    with _init_lock:
        if _source is not None:
            _source.shutdown()
            _source = None
    from facemarks.db.connection import close_index
    close_index()


def _dispatch(msg: dict) -> bool:
    """Dispatch a JSON-RPC request.  Returns False once the server should exit."""
    req_id = msg.get("id")
    method = msg.get("method", "")
    params = msg.get("params") or {}

    if method == "shutdown":
        _shutdown()
        _send_result(req_id, {"ok": True})
        return False

    if method in _SYNC_METHODS:
        try:
            result = _SYNC_METHODS[method](params)
            _send_result(req_id, result)
        except Exception as exc:
            log.debug("faces: %s failed", method, exc_info=True)
            _send_error(req_id, -1, str(exc))
    elif method in _ASYNC_METHODS:
        try:
            _ASYNC_METHODS[method](req_id, params)
        except Exception as exc:
            _send_error(req_id, -1, str(exc))
    else:
        _send_error(req_id, -32601, f"Method not found: {method}")
    return True


def serve(stdin: TextIO, stdout: TextIO) -> None:
    """Read requests from *stdin* until EOF or ``shutdown``."""
    global _out
    _out = stdout

    _send_notification("server/ready", {"pid": os.getpid(), "version": "1.0"})

    for line in stdin:
        line = line.strip()
        if not line:
            continue
        try:
            msg = json.loads(line)
        except json.JSONDecodeError as exc:
            _send_error(None, -32700, f"Parse error: {exc}")
            continue

        if not isinstance(msg, dict) or msg.get("jsonrpc") != "2.0":
            _send_error(msg.get("id") if isinstance(msg, dict) else None, -32600, "Invalid request")
            continue

        if not _dispatch(msg):
            return

    # stdin closed: host process died or pipe broken
    _shutdown()


# ── Main loop ────────────────────────────────────────────────────────────────

def main() -> None:
    """Read JSON-RPC requests from stdin, dispatch, write responses to stdout."""
    from dotenv import load_dotenv
    load_dotenv()

    from facemarks.settings import configure_logging
    configure_logging(_get_settings())

    # Keep the protocol stream clean: stray print() output goes to stderr
    real_stdout = sys.stdout
    sys.stdout = sys.stderr
    try:
        serve(io.TextIOWrapper(sys.__stdin__.buffer, encoding="utf-8"), real_stdout)
    finally:
        sys.stdout = real_stdout


if __name__ == "__main__":
    main()
