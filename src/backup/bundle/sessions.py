"""
Scan session lifecycle.

Every scan extracts its bundle into a private directory named by a fresh
UUID. The SessionStore owns those directories from creation until disposal;
a session is consumed at most once.
"""

import logging
import shutil
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from ..core.exceptions import SessionExpired
from ..core.models import ScanSession


logger = logging.getLogger(__name__)


class SessionStore:
    """
    Registry of scan sessions keyed by session id.

    Layout:
    {base_dir}/
    └── {session_id}/          # extraction directory, removed on dispose
        └── [wrapper/]meta.json

    Example:
        >>> sessions = SessionStore(Path("/tmp/vault_import"))
        >>> with sessions.scope() as session:
        ...     extract_into(session.working_directory)
        >>> sessions.claim(session.session_id)
    """

    def __init__(self, base_dir: Union[str, Path]):
        """
        Initialize the session store.

        Args:
            base_dir: Parent directory for extraction directories
        """
        self.base_dir = Path(base_dir)
        self._sessions: Dict[str, ScanSession] = {}
        self._extract_dirs: Dict[str, Path] = {}
        self._lock = threading.Lock()

    def create(self) -> ScanSession:
        """
        Allocate a new session and its empty extraction directory.

        The session is registered before anything is extracted so a failure
        later in the scan still finds it for cleanup.
        """
        session_id = str(uuid.uuid4())
        extract_dir = self.base_dir / session_id
        extract_dir.mkdir(parents=True, exist_ok=False)

        session = ScanSession(session_id=session_id, working_directory=extract_dir)
        with self._lock:
            self._sessions[session_id] = session
            self._extract_dirs[session_id] = extract_dir

        logger.debug(f"Created scan session {session_id} at {extract_dir}")
        return session

    def bind(self, session_id: str, working_directory: Path) -> ScanSession:
        """Point a session at its effective bundle root after extraction."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionExpired(f"Session expired: {session_id}", session_id)
            session.working_directory = Path(working_directory)
        return session

    def get(self, session_id: str) -> ScanSession:
        """
        Look up a live session.

        Raises:
            SessionExpired: If the id is unknown or its directory is gone
        """
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None or not session.working_directory.is_dir():
            raise SessionExpired(f"Session expired: {session_id}", session_id)
        return session

    def claim(self, session_id: str) -> ScanSession:
        """
        Take a session for consumption. A claimed session cannot be claimed
        again; the caller must dispose it.

        Raises:
            SessionExpired: If the id is unknown, already claimed, or its
                directory is gone
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None or not session.working_directory.is_dir():
            self._remove_dir(session_id)
            raise SessionExpired(f"Session expired: {session_id}", session_id)
        return session

    def dispose(self, session_id: str) -> None:
        """
        Forget a session and delete its extraction directory.

        Idempotent: unknown ids and missing directories are fine.
        """
        with self._lock:
            self._sessions.pop(session_id, None)
        self._remove_dir(session_id)

    def dispose_all(self) -> None:
        """Dispose every session, e.g. on application shutdown."""
        with self._lock:
            session_ids = list(self._extract_dirs)
        for session_id in session_ids:
            self.dispose(session_id)

    def active_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    @contextmanager
    def scope(self, session_id: Optional[str] = None) -> Iterator[ScanSession]:
        """
        Scoped acquisition of a session.

        With no id a new session is created, otherwise an existing one is
        claimed. The session is disposed when the block raises; on normal
        exit a newly created session stays registered and a claimed one is
        disposed.
        """
        created = session_id is None
        session = self.create() if created else self.claim(session_id)
        try:
            yield session
        except BaseException:
            self.dispose(session.session_id)
            raise
        if not created:
            self.dispose(session.session_id)

    def _remove_dir(self, session_id: str) -> None:
        with self._lock:
            extract_dir = self._extract_dirs.pop(session_id, None)
        if extract_dir is not None and extract_dir.exists():
            shutil.rmtree(extract_dir, ignore_errors=True)
            if extract_dir.exists():
                logger.warning(f"Could not fully remove session directory {extract_dir}")
            else:
                logger.debug(f"Removed session directory {extract_dir}")
