# shelfcrawl/seen.py
import threading


class SeenUrls:
    """
    Run-scoped set of detail-page URLs that have already produced a summary.

    Check-and-insert is atomic, so listing pages may be processed from
    several threads or tasks against the same instance.
    """

    def __init__(self, urls=None):
        self._lock = threading.Lock()
        self._urls = set(urls or ())

    def add_if_absent(self, url):
        """Insert ``url``; return True only if it was not already present."""
        with self._lock:
            if url in self._urls:
                return False
            self._urls.add(url)
            return True

    def __contains__(self, url):
        with self._lock:
            return url in self._urls

    def __len__(self):
        with self._lock:
            return len(self._urls)
