import re, sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from openpyxl import load_workbook
from playwright.sync_api import sync_playwright, Error as PWError, TimeoutError as PWTimeout
from coa_config import ConfigError, load_settings
from coa_notify import ChatNotifier
from coa_results import ProductReport, SuiteSummary, TestResult
from lot_scroll import (
    log, find_by_role, make_probe, discover_rows, ensure_row, reload_page,
    DiscoveryTimeout, ReloadFailed,
)
UNKNOWN_LOT = "UNKNOWN"
class SaveVerificationError(Exception):
    pass
class ContentValidationError(Exception):
    pass
def sanitize_lot(lot: str) -> str:
    return re.sub(r"[^a-zA-Z0-9.-]", "_", lot or "")
def unique_file_name(product_name, lot, ext, taken=None):
    base = f"{product_name}_{sanitize_lot(lot)}"
    name = f"{base}{ext}"
    if taken is None:
        return name
    n = 1
    while name in taken:
        n += 1
        name = f"{base}_{n}{ext}"
    if n > 1:
        log(f"[save] WARNING: lot {lot!r} collides with an earlier file name; saving as {name}")
    taken.add(name)
    return name
def artifact_regex(template, product_name):
    return re.compile(template.replace("{product}", re.escape(product_name)))
def read_lot_number(row, column=1, timeout_ms=5000):
    try:
        text = row.locator("td").nth(column).text_content(timeout=timeout_ms)
    except PWError as e:
        log(f"[row] could not read lot label: {e}")
        return UNKNOWN_LOT
    return (text or "").strip() or UNKNOWN_LOT
def verify_workbook(path, required_items):
    wb = load_workbook(path, read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        data = [str(v).strip() for r in ws.iter_rows(values_only=True) for v in r if v is not None]
    finally:
        wb.close()
    last = -1
    for item in required_items:
        if item not in data:
            raise ContentValidationError(f"required item missing: {item!r}")
        found = data.index(item)
        if found < last:
            raise ContentValidationError(f"item out of order: {item!r} appears before the previous item")
        last = found
    log(f"[verify] all items present in order: {', '.join(required_items)}")
def save_failure_screenshot(page, product_name, lot, diagnostics_dir):
    diagnostics_dir = Path(diagnostics_dir)
    path = diagnostics_dir / f"failure-{product_name}-{sanitize_lot(lot)}.png"
    try:
        diagnostics_dir.mkdir(parents=True, exist_ok=True)
        page.screenshot(path=str(path), full_page=True)
    except (PWError, OSError) as e:
        log(f"[screenshot] could not save {path}: {e}")
        return None
    log(f"[screenshot] saved for debugging: {path}")
    return path
def extract_lot(page, row, product, lot, settings, taken):
    tag = f"[{product.name}][{lot}]"
    log(f"{tag} triggering report generation")
    find_by_role(row, "button", settings.generate_button_name(), exact=False).click()
    page.wait_for_load_state("networkidle", timeout=settings.network_idle_timeout_ms)
    log(f"{tag} waiting for artifact (up to {settings.artifact_timeout_ms // 1000}s)")
    button = find_by_role(page, "button", artifact_regex(settings.artifact_pattern, product.name)).first
    button.wait_for(state="visible", timeout=settings.artifact_timeout_ms)
    log(f"{tag} downloading")
    with page.expect_download(timeout=settings.download_timeout_ms) as dl_info:
        button.click()
    download = dl_info.value
    ext = Path(download.suggested_filename or "").suffix or ".xlsx"
    downloads_dir = Path(settings.downloads_dir)
    downloads_dir.mkdir(parents=True, exist_ok=True)
    name = unique_file_name(product.name, lot, ext, taken)
    path = downloads_dir / name
    download.save_as(path)
    if not path.is_file():
        raise SaveVerificationError(f"downloaded file not found on disk: {path}")
    log(f"{tag} saved: {path}")
    if product.required_items:
        verify_workbook(path, product.required_items)
    return name
def process_row(page, rows, index, total, product, probe, settings, taken):
    lot = UNKNOWN_LOT
    try:
        row = ensure_row(rows, index, probe, attempts=settings.row_access_attempts)
        lot = read_lot_number(row, settings.lot_column)
        log(f"[{index + 1}/{total}] start: product={product.name}, lot={lot}")
        name = extract_lot(page, row, product, lot, settings, taken)
    except Exception as e:
        error = str(e).strip() or e.__class__.__name__
        log(f"[FAIL] product: {product.name}, lot: {lot}, error: {error}")
        save_failure_screenshot(page, product.name, lot, settings.diagnostics_dir)
        return TestResult.failure(product.name, lot, error)
    log(f"[OK] product: {product.name}, lot: {lot}")
    return TestResult.success(product.name, lot, name)
def run_product(browser, product, settings, report=None):
    report = report if report is not None else ProductReport(product.name)
    context = browser.new_context(
        storage_state=str(settings.storage_state),
        ignore_https_errors=settings.ignore_https_errors,
        accept_downloads=True,
    )
    try:
        page = context.new_page()
        url = settings.product_url(product)
        log(f"[{product.name}] navigating to {url}")
        page.goto(url, wait_until="networkidle", timeout=settings.navigation_timeout_ms)
        rows = page.locator(settings.row_selector)
        try:
            rows.first.wait_for(state="visible", timeout=settings.first_row_timeout_ms)
        except PWTimeout:
            log(f"[{product.name}] no rows visible after {settings.first_row_timeout_ms}ms")
        probe = make_probe(page, rows, settings.probe_mode, settings.scroll_distance, settings.settle_ms)
        cap = settings.lot_cap(product)
        found = discover_rows(
            rows.count, probe,
            target_count=cap,
            stagnation_threshold=settings.stagnation_threshold,
            timeout_ms=settings.discovery_timeout_ms,
        )
        lots_to_test = min(cap, found)
        log(f"[{product.name}] testing {lots_to_test} lot(s)")
        taken = set()
        for index in range(lots_to_test):
            report.add(process_row(page, rows, index, lots_to_test, product, probe, settings, taken))
            if index < lots_to_test - 1:
                reload_page(
                    page,
                    attempts=settings.reload_attempts,
                    backoff_ms=settings.reload_backoff_ms,
                    timeout_ms=settings.navigation_timeout_ms,
                )
    finally:
        context.close()
    return report
def _launch(p, settings):
    return getattr(p, settings.browser).launch(headless=settings.headless)
def login(browser, settings):
    settings.require_credentials()
    context = browser.new_context(ignore_https_errors=settings.ignore_https_errors)
    try:
        page = context.new_page()
        page.goto(f"{settings.base_url.rstrip('/')}/login#/login", timeout=settings.navigation_timeout_ms)
        page.locator('input[name="id"]').fill(settings.username)
        page.locator('input[name="pwd"]').fill(settings.password)
        find_by_role(page, "button", "로그인").click()
        page.get_by_text(settings.login_marker).first.wait_for(state="visible", timeout=10000)
        state_path = Path(settings.storage_state)
        state_path.parent.mkdir(parents=True, exist_ok=True)
        context.storage_state(path=str(state_path))
    finally:
        context.close()
    log(f"[login] session stored in {settings.storage_state}")
def run_isolated(product, settings, notifier):
    report = ProductReport(product.name)
    try:
        with sync_playwright() as p:
            browser = _launch(p, settings)
            try:
                run_product(browser, product, settings, report)
            finally:
                browser.close()
    except (ReloadFailed, DiscoveryTimeout, PWError) as e:
        report.fatal_error = str(e).strip() or e.__class__.__name__
        log(f"[{product.name}] run aborted: {report.fatal_error}")
    log(report.message())
    notifier.send(report.message())
    return report
def run_suite(settings, product_names=None, notifier=None):
    settings.require_credentials()
    products = [settings.product(n) for n in product_names] if product_names else list(settings.products)
    notifier = notifier or ChatNotifier.from_settings(settings)
    summary = SuiteSummary()
    try:
        with sync_playwright() as p:
            browser = _launch(p, settings)
            try:
                login(browser, settings)
            finally:
                browser.close()
        if settings.workers > 1 and len(products) > 1:
            with ThreadPoolExecutor(max_workers=settings.workers) as pool:
                for rep in pool.map(lambda pr: run_isolated(pr, settings, notifier), products):
                    summary.add_report(rep)
        else:
            for pr in products:
                summary.add_report(run_isolated(pr, settings, notifier))
    except Exception as e:
        summary.error = f"{e.__class__.__name__}: {str(e).strip()}"
        log(f"[ERROR] suite run crashed: {summary.error}")
    summary.write(settings.results_dir)
    log(f"--- suite result: {summary.outcome} (success {summary.success_count}, failure {summary.failure_count}) ---")
    if summary.outcome != "passed":
        log(summary.failure_message())
    return summary
def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print("Usage: python coa_download.py <config.yaml> [PRODUCT ...]")
        return 2
    try:
        settings = load_settings(argv[0])
        summary = run_suite(settings, argv[1:] or None)
    except ConfigError as e:
        log(f"[ERROR] configuration: {e}")
        return 2
    return summary.exit_code()
if __name__ == "__main__":
    sys.exit(main())
