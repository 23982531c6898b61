import os
import asyncio
import argparse
from typing import Dict, Any, List

from hr_browser import BrowserHandle
from hr_common import log, ensure_dir, data_path, hashed_filename, clean_text, safe_json_save
from hr_fetch import fetch_document, SKIPPED, DOWNLOADED, FAILED
from hr_ledger import Ledger

# ================= CONFIG =================

SEARCH_URL = (
    "https://tbinternet.ohchr.org/_layouts/15/TreatyBodyExternal/TBSearch.aspx"
    "?Lang=en&TreatyID={treaty_id}&DocTypeID={doc_type_id}"
)
TREATY_ID = 8
DOC_TYPE_ID = 11

OUT_DIR = data_path("data_crawler_UN_treaty_body")
LINKS_FILE = "links.json"

PAGE_SIZE_SELECTOR = 'input[value="10"]'
ALL_OPTION = "xpath=//li[contains(text(), 'All')]"
VIEW_LINKS = "xpath=//a[contains(text(), 'View document')]"

LINKS_JS = """
els => els.map(a => {
  const tr = a.closest('tr');
  return { href: a.href, title: (tr ? tr.innerText : a.innerText).trim() };
})
"""

UI_PAUSE_MS = 500
SLEEP_BETWEEN_DOWNLOADS = 1.0

# =========================================


def search_url(treaty_id: int, doc_type_id: int) -> str:
    return SEARCH_URL.format(treaty_id=treaty_id, doc_type_id=doc_type_id)


def unique_links(links: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = set()
    out = []
    for link in links:
        href = link.get("href")
        if not href or href in seen:
            continue
        seen.add(href)
        out.append({"href": href, "title": clean_text(link.get("title"), "unknown")})
    return out


async def list_documents(page, url: str) -> List[Dict[str, Any]]:
    """
    Switch the result grid to show every row, then collect the "View document" links.
    """
    await page.goto(url, wait_until="networkidle")
    await page.wait_for_selector(PAGE_SIZE_SELECTOR, state="visible", timeout=5000)
    await page.click(PAGE_SIZE_SELECTOR)
    await page.wait_for_timeout(UI_PAUSE_MS)

    all_option = page.locator(ALL_OPTION)
    if await all_option.count() > 0:
        await all_option.first.click()
        log("[Treaty] Selected 'All' results")
        await page.wait_for_load_state("networkidle")
    else:
        log("[Treaty] WARNING: no 'All' option found, only the first page will be collected")
    await page.wait_for_timeout(UI_PAUSE_MS)

    return unique_links(await page.eval_on_selector_all(VIEW_LINKS, LINKS_JS))


async def scrape_search(context, url: str, out_dir: str, ledger: Ledger, category: str,
                        list_only: bool = False, retry_failed: bool = False) -> Ledger:
    page = await context.new_page()
    try:
        links = await list_documents(page, url)
    finally:
        await page.close()

    log(f"[Treaty] Found {len(links)} 'View document' links")
    safe_json_save(os.path.join(out_dir, LINKS_FILE), links)

    if list_only:
        for i, link in enumerate(links, 1):
            log(f"[Treaty] {i}: {link['href']}")
        return ledger

    files_dir = os.path.join(out_dir, "files")
    ensure_dir(files_dir)

    counts = {SKIPPED: 0, DOWNLOADED: 0, FAILED: 0}
    for link in links:
        key = hashed_filename(link["href"])
        outcome = await fetch_document(
            context,
            ledger,
            key,
            link["href"],
            os.path.join(files_dir, key),
            title=link["title"],
            category=category,
            render=False,
            referer=url,
            extension_from_type=True,
            retry_failed=retry_failed,
        )
        counts[outcome] += 1
        if outcome == DOWNLOADED:
            await asyncio.sleep(SLEEP_BETWEEN_DOWNLOADS)

    log(f"[Treaty] {counts[DOWNLOADED]} downloaded, {counts[SKIPPED]} skipped, {counts[FAILED]} failed")
    return ledger


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="UN Treaty Body database document downloader.")
    p.add_argument("--treaty-id", type=int, default=TREATY_ID)
    p.add_argument("--doc-type-id", type=int, default=DOC_TYPE_ID)
    p.add_argument("--out-dir", type=str, default=OUT_DIR)
    p.add_argument("--list-only", action="store_true", help="Only collect and log the document links.")
    p.add_argument("--headed", action="store_true")
    p.add_argument("--retry-failed", action="store_true")
    return p.parse_args()


async def main():
    args = parse_args()
    ensure_dir(args.out_dir)
    ledger = Ledger.open(args.out_dir)

    url = search_url(args.treaty_id, args.doc_type_id)
    category = f"treaty {args.treaty_id} / doctype {args.doc_type_id}"

    async with BrowserHandle(headless=not args.headed) as handle:
        try:
            await handle.run(
                scrape_search, url, args.out_dir, ledger, category,
                list_only=args.list_only, retry_failed=args.retry_failed,
            )
        except Exception as e:
            log(f"[Treaty] FATAL ERROR: {e!r}")
            raise
        finally:
            ledger.save()

    log(f"[Treaty] FINISHED ({ledger.summary()})")


if __name__ == "__main__":
    asyncio.run(main())
