# University of Minnesota Human Rights Library
# "Instrumentos Internacionales de Derechos Humanos" index, one table per category.
import os
import asyncio
import argparse
from typing import Dict, Any, List

from hr_browser import BrowserHandle
from hr_common import log, ensure_dir, data_path, hashed_filename, url_extension, clean_text
from hr_fetch import fetch_document, SKIPPED, DOWNLOADED, FAILED
from hr_ledger import Ledger

# ================= CONFIG =================

INDEX_URL = "http://hrlibrary.umn.edu/instree/Sainstls1.htm"
OUT_DIR = data_path("data_crawler_University_of_Minnesota_Human_Rights_Library")

UNKNOWN_CATEGORY = "Unknown Category"

# Title is the first link's text plus the loose text nodes after it (skipping <br>)
TABLES_JS = """
tables => tables.map(table => {
  const cat = table.querySelector('thead th span strong');
  const rows = Array.from(table.querySelectorAll('tbody tr')).map(tr => {
    const td = tr.querySelector('td');
    if (!td) return null;
    const a = td.querySelector('a');
    if (!a) return null;
    let text = '';
    let node = a.nextSibling;
    while (node) {
      if (node.nodeType === Node.TEXT_NODE) {
        text += node.textContent;
      } else if (!(node.nodeType === Node.ELEMENT_NODE && node.tagName === 'BR')) {
        break;
      }
      node = node.nextSibling;
    }
    return { href: a.href, title: (a.innerText + ' ' + text.trim()).trim() };
  });
  return { category: cat ? cat.innerText.trim() : null, rows: rows };
})
"""

SLEEP_BETWEEN_DOWNLOADS = 0.5

# =========================================


def document_key(url: str) -> str:
    return hashed_filename(url) + url_extension(url)


async def list_tables(page) -> List[Dict[str, Any]]:
    await page.goto(INDEX_URL, wait_until="networkidle")
    await page.wait_for_selector("body")
    return await page.eval_on_selector_all("table", TABLES_JS)


async def process_row(context, ledger: Ledger, row: Dict[str, Any], category: str, out_dir: str,
                      retry_failed: bool = False) -> str:
    href = row.get("href")
    title = clean_text(row.get("title"))
    if not href or not title:
        log("[UMN] No file link or title found, skipping")
        return SKIPPED

    key = document_key(href)
    return await fetch_document(
        context,
        ledger,
        key,
        href,
        os.path.join(out_dir, key),
        title=title,
        category=category,
        referer=INDEX_URL,
        retry_failed=retry_failed,
    )


async def scrape_index(context, out_dir: str, ledger: Ledger, retry_failed: bool = False) -> Ledger:
    page = await context.new_page()
    try:
        tables = await list_tables(page)
    finally:
        await page.close()

    log(f"[UMN] Found {len(tables)} tables")

    counts = {SKIPPED: 0, DOWNLOADED: 0, FAILED: 0}
    for table in tables:
        category = clean_text(table.get("category"), UNKNOWN_CATEGORY)
        rows = [r for r in (table.get("rows") or []) if r]
        log(f"[UMN] Category '{category}': {len(rows)} rows")

        for row in rows:
            outcome = await process_row(context, ledger, row, category, out_dir, retry_failed)
            counts[outcome] += 1
            if outcome == DOWNLOADED:
                await asyncio.sleep(SLEEP_BETWEEN_DOWNLOADS)

    log(f"[UMN] {counts[DOWNLOADED]} downloaded, {counts[SKIPPED]} skipped, {counts[FAILED]} failed")
    ledger.save()
    return ledger


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="University of Minnesota Human Rights Library instruments downloader."
    )
    p.add_argument("--out-dir", type=str, default=OUT_DIR)
    p.add_argument("--headed", action="store_true")
    p.add_argument("--retry-failed", action="store_true")
    return p.parse_args()


async def main():
    args = parse_args()
    ensure_dir(args.out_dir)
    ledger = Ledger.open(args.out_dir)

    async with BrowserHandle(headless=not args.headed) as handle:
        try:
            await handle.run(scrape_index, args.out_dir, ledger, retry_failed=args.retry_failed)
        finally:
            ledger.save()

    log(f"[UMN] Ledgers saved: {ledger.success_path}, {ledger.failed_path} ({ledger.summary()})")


if __name__ == "__main__":
    asyncio.run(main())
