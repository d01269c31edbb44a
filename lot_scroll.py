import re, time
from playwright.sync_api import Error as PWError, TimeoutError as PWTimeout
def ts():
    return time.strftime("%Y-%m-%d %H:%M:%S")
def log(msg):
    print(f"[{ts()}] {msg}", flush=True)
class DiscoveryTimeout(Exception):
    pass
class RowNotFound(Exception):
    pass
class ReloadFailed(Exception):
    pass
def find_by_role(scope, role, pattern, exact=True):
    """Locate an interactive element by ARIA role and name.

    A plain string matches the accessible name exactly, or as a
    case-insensitive substring with ``exact=False``; a compiled regex is
    passed through to Playwright as a pattern match.
    """
    if isinstance(pattern, re.Pattern):
        return scope.get_by_role(role, name=pattern)
    return scope.get_by_role(role, name=pattern, exact=exact)
def make_probe(page, rows, mode="last_row", scroll_distance=1800, settle_ms=1500):
    if mode not in ("last_row", "wheel"):
        raise ValueError(f"unknown probe mode: {mode!r}")
    def _probe():
        if mode == "wheel":
            page.mouse.wheel(0, scroll_distance)
        else:
            n = rows.count()
            if n > 0:
                last = rows.nth(n - 1)
                try:
                    last.hover(timeout=2000)
                except PWError:
                    pass
                last.scroll_into_view_if_needed(timeout=2000)
        page.wait_for_timeout(settle_ms)
    return _probe
def discover_rows(count_rows, probe, *, target_count=30, stagnation_threshold=3, timeout_ms=300000):
    if target_count < 1:
        raise ValueError("target_count must be positive")
    if stagnation_threshold < 1:
        raise ValueError("stagnation_threshold must be positive")
    deadline = time.time() + timeout_ms / 1000.0
    best = -1
    stagnant = 0
    while True:
        n = count_rows()
        log(f"[discover] rows rendered: {n} (target {target_count})")
        if n >= target_count:
            log("[discover] target reached")
            return n
        if n <= best:
            stagnant += 1
            if stagnant >= stagnation_threshold:
                log(f"[discover] no growth after {stagnant} probes; source exhausted at {n}")
                return n
        else:
            stagnant = 0
        best = max(best, n)
        if time.time() >= deadline:
            raise DiscoveryTimeout(f"row discovery exceeded {timeout_ms}ms at {n} rows")
        try:
            probe()
        except PWTimeout as e:
            log(f"[discover] probe timed out: {e}")
def ensure_row(rows, index, probe, *, attempts=10):
    n = rows.count()
    attempt = 0
    while index >= n:
        if attempt >= attempts:
            raise RowNotFound(f"row {index} not rendered after {attempts} probes (rendered: {n})")
        attempt += 1
        log(f"[row] index {index} beyond rendered {n}; probe {attempt}/{attempts}")
        try:
            probe()
        except PWTimeout as e:
            log(f"[row] probe timed out: {e}")
        n = rows.count()
    row = rows.nth(index)
    row.scroll_into_view_if_needed(timeout=5000)
    return row
def reload_page(page, *, attempts=3, backoff_ms=2000, timeout_ms=60000):
    last_exc = None
    for attempt in range(1, attempts + 1):
        try:
            log(f"[reload] attempt {attempt}/{attempts}")
            page.reload(wait_until="networkidle", timeout=timeout_ms)
            return
        except PWError as e:
            last_exc = e
            log(f"[reload] failed: {e}")
            if attempt < attempts:
                page.wait_for_timeout(backoff_ms * attempt)
    raise ReloadFailed(f"page reload failed after {attempts} attempts: {last_exc}")
