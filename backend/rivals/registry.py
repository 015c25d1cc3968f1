import logging
import threading
from typing import Dict, Optional

from rivals.models import Connection

log = logging.getLogger(__name__)


class ConnectionRegistry:
    """Live transport connections and the room each one belongs to.

    The registry owns Connection objects; rooms only keep the id. Room
    cleanup that follows an unregister is driven by RoomServer, which
    reads the returned Connection to decide between the host grace
    period and the immediate guest path.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._conns: Dict[str, Connection] = {}

    def register(self, conn_id: str, namespace: str = '/ws') -> str:
        with self._lock:
            self._conns[conn_id] = Connection(id=conn_id, namespace=namespace)
        log.info(f"[conn-open] conn={conn_id} active={len(self._conns)}")
        return conn_id

    def lookup(self, conn_id: str) -> Optional[Connection]:
        return self._conns.get(conn_id)

    def unregister(self, conn_id: str) -> Optional[Connection]:
        with self._lock:
            conn = self._conns.pop(conn_id, None)
        if conn:
            log.info(f"[conn-close] conn={conn_id} room={conn.room_code} host={conn.is_host}")
        return conn

    def attach(self, conn_id: str, room_code: str, is_host: bool) -> None:
        conn = self._conns.get(conn_id)
        if conn:
            conn.room_code = room_code
            conn.is_host = is_host

    def detach(self, conn_id: Optional[str], room_code: Optional[str] = None) -> None:
        """Forget room membership, optionally only if it still points at ``room_code``."""
        conn = self._conns.get(conn_id) if conn_id else None
        if not conn:
            return
        if room_code is None or conn.room_code == room_code:
            conn.room_code = None
            conn.is_host = False

    def __len__(self):
        return len(self._conns)
