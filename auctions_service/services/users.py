import logging
import threading

import requests

log = logging.getLogger(__name__)


class UserDirectory:
    """Public profile lookups against the auth service.

    Used to attach ``{"id", "username"}`` to bids at read time. Without a
    base URL every lookup returns None.
    """

    def __init__(self, base_url: str = "", timeout: float = 5):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self._cache: dict[int, dict | None] = {}
        self._lock = threading.Lock()

    def lookup(self, user_id: int) -> dict | None:
        if not self.base_url or user_id is None:
            return None
        with self._lock:
            if user_id in self._cache:
                return self._cache[user_id]
        try:
            r = requests.get(f"{self.base_url}/auth/users/{user_id}", timeout=self.timeout)
        except requests.RequestException as e:
            log.error("user lookup %s failed: %s", user_id, e)
            return None
        if r.status_code == 404:
            profile = None
        elif not r.ok:
            log.error("user lookup %s returned %s", user_id, r.status_code)
            return None
        else:
            try:
                d = r.json()
            except ValueError:
                log.error("user lookup %s: bad JSON", user_id)
                return None
            profile = {"id": d.get("id", user_id), "username": d.get("username")}
        with self._lock:
            self._cache[user_id] = profile
        return profile

    def project(self, user_ids) -> dict[int, dict | None]:
        return {uid: self.lookup(uid) for uid in set(user_ids)}
