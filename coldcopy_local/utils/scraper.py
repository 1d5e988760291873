"""
Website scraping for personalization context.
"""

import logging
import re
import threading
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup


USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0 Safari/537.36'
)
MIN_READABLE_CHARS = 160
MAX_HEADINGS = 25

_UNSUPPORTED_SCHEME = re.compile(r'^(mailto:|tel:|javascript:|data:)', re.IGNORECASE)
_HTTP_SCHEME = re.compile(r'^https?://', re.IGNORECASE)

_PARKED_PATTERNS = [
    re.compile(r'(domain\s+expired|this\s+domain\s+has\s+expired|domain\s+is\s+for\s+sale|'
               r'buy\s+this\s+domain|domain\s+parked|parking\s+page)', re.IGNORECASE),
    re.compile(r"(404\s+not\s+found|page\s+not\s+found|site\s+can'?t\s+be\s+reached|"
               r"dns\s+probe\s+finished|name\s+not\s+resolved)", re.IGNORECASE),
    re.compile(r'(access\s+denied|error\s+1020|cloudflare|attention\s+required)', re.IGNORECASE),
]


class ScrapeError(RuntimeError):
    """Raised when a URL cannot be fetched or yields too little readable text."""


def looks_like_unreachable_or_parked_page(text: str) -> bool:
    """
    Heuristic for scraped text that carries no real company content:
    very short pages, parked or expired domains, error and block pages.
    """
    s = str(text or '')
    compact = re.sub(r'\s+', ' ', s).strip()
    if len(compact) < 80:
        return True
    return any(pattern.search(s) for pattern in _PARKED_PATTERNS)


def clean_text(text: str) -> str:
    cleaned = str(text or '').replace('\u00a0', ' ')
    cleaned = re.sub(r'[\t ]+', ' ', cleaned)
    cleaned = re.sub(r' *\n *', '\n', cleaned)
    cleaned = re.sub(r'\n{3,}', '\n\n', cleaned)
    return cleaned.strip()


def cap_text(text: str, max_chars: int) -> str:
    """Clean text and cut it to ``max_chars`` with a trailing ellipsis."""
    cleaned = clean_text(text)
    if len(cleaned) <= max_chars:
        return cleaned
    return cleaned[:max_chars] + '…'


def ensure_http_url(raw_url: str) -> str:
    """
    Validate a user supplied URL without rewriting it.

    Raises:
        ScrapeError: For blank, non-http(s) or unparsable URLs
    """
    raw = str(raw_url or '').strip()
    if not raw:
        raise ScrapeError("Company / Activity URL is required")
    if _UNSUPPORTED_SCHEME.match(raw):
        raise ScrapeError("Unsupported URL scheme")
    if not _HTTP_SCHEME.match(raw):
        raise ScrapeError("Company / Activity URL must start with http:// or https://")

    parsed = urlparse(raw)
    if parsed.scheme.lower() not in ('http', 'https') or not parsed.netloc:
        raise ScrapeError("Invalid URL")
    return raw


def extract_page_sections(html: Any) -> Dict[str, Any]:
    """
    Pull the title, meta description, headings and body text from HTML.

    Returns:
        Dictionary with ``title``, ``meta_description``, ``headings`` and ``body_text``
    """
    soup = BeautifulSoup(html, 'html.parser')

    for element in soup(["script", "style", "noscript"]):
        element.decompose()

    title = soup.title.get_text() if soup.title else ''
    meta = soup.find('meta', attrs={'name': 'description'})
    meta_description = meta.get('content', '') if meta else ''

    headings = []
    for heading in soup.find_all(['h1', 'h2', 'h3']):
        value = clean_text(heading.get_text(' '))
        if value:
            headings.append(value)
        if len(headings) >= MAX_HEADINGS:
            break

    body = soup.body if soup.body else soup
    return {
        'title': clean_text(title),
        'meta_description': clean_text(meta_description),
        'headings': headings,
        'body_text': clean_text(body.get_text('\n')),
    }


class WebsiteScraper:
    """
    Fetches a page and turns it into personalization text.
    Concurrent scrapes are bounded by ``scrape_concurrency``.
    """

    def __init__(
        self,
        scrape_concurrency: int = 5,
        timeout_ms: int = 30000,
        max_chars: int = 6000,
        proxy_url: Optional[str] = None,
        log_activity_context: bool = False,
        log_max_chars: int = 2000,
    ):
        self.timeout_ms = timeout_ms
        self.max_chars = max_chars
        self.proxy_url = proxy_url
        self.log_activity_context = log_activity_context
        self.log_max_chars = log_max_chars
        self._slots = threading.BoundedSemaphore(max(1, int(scrape_concurrency or 1)))
        self.logger = logging.getLogger("coldcopy.scraper")
        # requests.Session is not thread-safe; each worker thread gets its own.
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'WebsiteScraper':
        return cls(
            scrape_concurrency=config.get('scrape_concurrency', 5),
            timeout_ms=config.get('scrape_timeout_ms', 30000),
            max_chars=config.get('max_scraped_chars', 6000),
            proxy_url=config.get('scrape_proxy_url'),
            log_activity_context=bool(config.get('log_activity_context')),
            log_max_chars=config.get('log_activity_context_max_chars', 2000),
        )

    def scrape(self, url: str) -> str:
        """
        Scrape a URL into ``Title`` / ``Meta`` / ``Headings`` / ``Page Text`` sections.

        Args:
            url: http(s) URL

        Returns:
            Combined text capped at ``max_chars``

        Raises:
            ScrapeError: On invalid URLs, network or HTTP failures and thin content
        """
        target = ensure_http_url(url)

        with self._slots:
            html = self._fetch(target)

        sections = extract_page_sections(html)
        parts = []
        if sections['title']:
            parts.append(f"Title: {sections['title']}")
        if sections['meta_description']:
            parts.append(f"Meta: {sections['meta_description']}")
        if sections['headings']:
            parts.append(f"Headings: {' | '.join(sections['headings'])}")
        if sections['body_text']:
            parts.append(f"Page Text:\n{sections['body_text']}")

        combined = cap_text('\n\n'.join(parts), self.max_chars)
        compact = re.sub(r'\s+', ' ', combined).strip()
        if len(compact) < MIN_READABLE_CHARS:
            self.logger.warning(f"Too little readable text at {target} ({len(compact)} chars)")
            raise ScrapeError(
                "Not able to read the URL content for personalization. "
                "Please provide the activity context instead."
            )

        if self.log_activity_context:
            self.logger.info(f"Scraped activity context from {target}:\n{cap_text(combined, max(200, self.log_max_chars))}")

        return combined

    def _fetch(self, url: str) -> bytes:
        headers = {
            'User-Agent': USER_AGENT,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.9',
        }
        proxies = {'http': self.proxy_url, 'https': self.proxy_url} if self.proxy_url else None

        try:
            response = self.session.get(
                url,
                headers=headers,
                timeout=self.timeout_ms / 1000.0,
                proxies=proxies,
                allow_redirects=True,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            self.logger.warning(f"Website scraping failed for {url}: {str(e)}")
            raise ScrapeError(f"Not able to open the URL or extract content: {str(e)}") from e

        return response.content

    def close(self) -> None:
        """Close the session of every thread that scraped."""
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()
