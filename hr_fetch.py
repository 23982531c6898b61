import os
import glob
import asyncio
import mimetypes
from typing import Dict, Any, Optional

from hr_browser import is_disconnect_error
from hr_common import log, url_extension
from hr_ledger import Ledger

# ================= CONFIG =================

DOWNLOAD_TIMEOUT_MS = 180000
NAVIGATION_TIMEOUT_MS = 120000

PDF_FORMAT = "A4"
PDF_MARGIN = {"top": "20mm", "right": "20mm", "bottom": "20mm", "left": "20mm"}

# Anything else (htm, html, asp, cfm, no extension...) is rendered by the browser
DIRECT_EXTENSIONS = {".pdf", ".doc", ".docx", ".rtf", ".odt", ".txt", ".zip"}

SKIPPED = "skipped"
DOWNLOADED = "downloaded"
FAILED = "failed"

# =========================================


class FetchError(Exception):
    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class HTTPStatusError(FetchError):
    def __init__(self, status: int, url: str = ""):
        super().__init__(f"HTTP {status} for {url}", url)
        self.status = status


class ContentTypeError(FetchError):
    def __init__(self, expected: str, got: str, url: str = ""):
        super().__init__(f"Expected {expected} but got {got or 'no content type'}", url)
        self.expected = expected
        self.got = got


class RateLimitError(FetchError):
    def __init__(self, url: str = ""):
        super().__init__(f"Rate limit exceeded for {url}", url)


class RetryExhaustedError(FetchError):
    def __init__(self, retries: int, last_error: Optional[BaseException] = None):
        url = getattr(last_error, "url", "")
        super().__init__(f"Failed after {retries} retries", url)
        self.retries = retries
        self.last_error = last_error


def wants_render(url: str) -> bool:
    return url_extension(url) not in DIRECT_EXTENSIONS


def output_path_for(url: str, out_path: str, render: Optional[bool] = None) -> str:
    if render is None:
        render = wants_render(url)
    if render and not out_path.lower().endswith(".pdf"):
        return out_path + ".pdf"
    return out_path


def _write_atomic(out_path: str, body: bytes) -> None:
    part_path = out_path + ".part"
    with open(part_path, "wb") as f:
        f.write(body)
    os.replace(part_path, out_path)


def _drop_partial(out_path: str) -> None:
    part_path = out_path + ".part"
    if os.path.exists(part_path):
        os.remove(part_path)


def _extension_for(content_type: str) -> str:
    mime = content_type.split(";", 1)[0].strip().lower()
    if mime == "application/msword":
        return ".doc"
    return mimetypes.guess_extension(mime) or ".bin"


async def fetch_direct(
    context,
    url: str,
    out_path: str,
    expect_content_type: Optional[str] = None,
    referer: Optional[str] = None,
    rate_limit_marker: Optional[str] = None,
    extension_from_type: bool = False,
) -> str:
    """
    GET through the browser context's request client and write the body.
    Returns the path written.
    """
    _drop_partial(out_path)

    headers = {"Accept": "application/pdf,application/msword,*/*"}
    if referer:
        headers["Referer"] = referer

    resp = await context.request.get(url, timeout=DOWNLOAD_TIMEOUT_MS, headers=headers)
    try:
        if resp.status != 200:
            raise HTTPStatusError(resp.status, url)

        content_type = resp.headers.get("content-type", "")
        if expect_content_type and expect_content_type not in content_type.lower():
            text = await resp.text()
            if rate_limit_marker and rate_limit_marker in text:
                raise RateLimitError(url)
            raise ContentTypeError(expect_content_type, content_type, url)

        if extension_from_type:
            out_path = out_path + _extension_for(content_type)

        _write_atomic(out_path, await resp.body())
    finally:
        # release the body buffered in the shared context
        await resp.dispose()
    return out_path


async def render_pdf(
    context,
    url: str,
    out_path: str,
    rate_limit_marker: Optional[str] = None,
) -> str:
    """
    Open the page, wait for network idle and print it to PDF.
    page.pdf only works with headless Chromium.
    """
    _drop_partial(out_path)
    page = await context.new_page()
    try:
        await page.goto(url, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)

        if rate_limit_marker:
            content = await page.content()
            if rate_limit_marker in content:
                raise RateLimitError(url)

        part_path = out_path + ".part"
        await page.pdf(
            path=part_path,
            format=PDF_FORMAT,
            margin=PDF_MARGIN,
            print_background=True,
        )
        os.replace(part_path, out_path)
    finally:
        await page.close()

    return out_path


async def download_or_render(
    context,
    url: str,
    out_path: str,
    render: Optional[bool] = None,
    expect_content_type: Optional[str] = None,
    referer: Optional[str] = None,
    rate_limit_marker: Optional[str] = None,
    extension_from_type: bool = False,
) -> str:
    if render is None:
        render = wants_render(url)

    if render:
        target = output_path_for(url, out_path, render=True)
        await render_pdf(context, url, target, rate_limit_marker=rate_limit_marker)
        log(f"RENDERED {url} -> {target}")
        return target

    target = await fetch_direct(
        context,
        url,
        out_path,
        expect_content_type=expect_content_type,
        referer=referer,
        rate_limit_marker=rate_limit_marker,
        extension_from_type=extension_from_type,
    )
    log(f"SAVED {url} -> {target}")
    return target


async def resolve_redirects(context, url: str, max_redirects: int = 5) -> str:
    try:
        resp = await context.request.head(
            url, timeout=DOWNLOAD_TIMEOUT_MS, max_redirects=max_redirects
        )
        final_url = resp.url or url
        await resp.dispose()
        return final_url
    except Exception as e:
        if is_disconnect_error(e):
            raise
        log(f"WARNING: could not resolve redirect for {url}: {e!r}")
        return url


async def retry_with_delay(fn, *args, delay: float, retries: int, sleep=asyncio.sleep, **kwargs):
    """
    Await fn(*args, **kwargs), sleeping `delay` seconds and calling again
    each time it raises RateLimitError. Other errors propagate as-is.
    """
    last_error = None
    for attempt in range(1, retries + 1):
        try:
            return await fn(*args, **kwargs)
        except RateLimitError as e:
            last_error = e
            if attempt == retries:
                break
            log(
                f"Rate limit hit (attempt {attempt}/{retries}), "
                f"waiting {delay / 60:.1f} minutes before retrying"
            )
            await sleep(delay)
    raise RetryExhaustedError(retries, last_error)


def _existing_output(out_path: str, url: str, render: Optional[bool], extension_from_type: bool) -> Optional[str]:
    if extension_from_type:
        for candidate in sorted(glob.glob(glob.escape(out_path) + ".*")):
            if not candidate.endswith((".part", ".tmp")):
                return candidate
        return None
    target = output_path_for(url, out_path, render)
    return target if os.path.exists(target) else None


async def fetch_document(
    context,
    ledger: Ledger,
    key: str,
    url: str,
    out_path: str,
    title: str = "",
    category: str = "",
    render: Optional[bool] = None,
    expect_content_type: Optional[str] = None,
    referer: Optional[str] = None,
    rate_limit_marker: Optional[str] = None,
    extension_from_type: bool = False,
    retry_failed: bool = False,
    extra: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Skip-if-known, download-or-render, record. Returns SKIPPED, DOWNLOADED or FAILED.

    RateLimitError is not recorded; it propagates to the retry wrapper.
    Browser disconnects propagate too, for BrowserHandle.run to reconnect.
    The ledger is persisted after every recorded change.
    """
    out_dir = os.path.dirname(out_path)

    if ledger.is_failed(key) and not retry_failed:
        log(f"SKIP (failed before) {key}")
        return SKIPPED

    known_file = ledger.file_for(key)
    if known_file and os.path.exists(os.path.join(out_dir, known_file)):
        log(f"SKIP (in ledger) {key}")
        return SKIPPED
    if known_file:
        log(f"Ledger entry without file, downloading again: {key}")

    existing = _existing_output(out_path, url, render, extension_from_type)
    if existing:
        ledger.record_success(
            key, url, title, category,
            extra=dict(extra or {}, file=os.path.basename(existing)),
        )
        ledger.save()
        log(f"SKIP (already on disk) {os.path.basename(existing)}")
        return SKIPPED

    log(f"DOWNLOAD {key} <- {url}")
    try:
        written = await download_or_render(
            context,
            url,
            out_path,
            render=render,
            expect_content_type=expect_content_type,
            referer=referer,
            rate_limit_marker=rate_limit_marker,
            extension_from_type=extension_from_type,
        )
    except RateLimitError:
        raise
    except Exception as e:
        if is_disconnect_error(e):
            # handled by BrowserHandle.run
            raise
        ledger.record_failure(key, url, title, category, error=str(e) or repr(e), extra=extra)
        ledger.save()
        log(f"ERROR {e!r} for {key}")
        return FAILED

    ledger.record_success(
        key, url, title, category,
        extra=dict(extra or {}, file=os.path.basename(written)),
    )
    ledger.save()
    log(f"DONE {os.path.basename(written)}")
    return DOWNLOADED
