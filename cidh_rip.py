import os
import asyncio
import argparse
from datetime import datetime
from typing import Dict, Any, List

from hr_browser import BrowserHandle, BrowserUnavailableError
from hr_common import log, ensure_dir, data_path, filename_from_url, clean_text, parse_range_string
from hr_fetch import fetch_document, DOWNLOADED, FAILED
from hr_ledger import Ledger

# ================= CONFIG =================

YEAR_URL = "https://www.oas.org/es/cidh/decisiones/pc/fondos.asp?Year={}"
FIRST_YEAR = 1973

OUT_DIR = data_path("data_cidh", "informes_fondo")
MAPPING_DIRNAME = "case_mapping"

LIST_SELECTOR = "#rightmaincol"
ITEM_SELECTOR = "#rightmaincol ul li"

ITEMS_JS = """
els => els.map(li => {
  const a = li.querySelector('a');
  return { title: li.innerText.trim(), href: a ? a.href : null };
})
"""

CONCURRENCY = 4
SLEEP_BETWEEN_YEARS = 1.5

# =========================================


def ledger_for_year(out_dir: str, year: int, resume: bool = True) -> Ledger:
    mapping_dir = os.path.join(out_dir, MAPPING_DIRNAME)
    ensure_dir(mapping_dir)
    return Ledger.open(
        mapping_dir,
        success_name=f"case_mapping_year_{year}.json",
        failed_name=f"case_mapping_year_{year}_failed.json",
        resume=resume,
    )


async def list_year_items(page, year: int) -> List[Dict[str, Any]]:
    await page.goto(YEAR_URL.format(year), wait_until="networkidle")
    await page.wait_for_selector(LIST_SELECTOR)
    return await page.eval_on_selector_all(ITEM_SELECTOR, ITEMS_JS)


async def process_item(context, ledger: Ledger, item: Dict[str, Any], year_dir: str, year: int,
                       retry_failed: bool = False) -> str:
    title = clean_text(item.get("title"), "unknown")
    href = item.get("href")

    if not href:
        log(f"[CIDH {year}] No file link for '{title}', skipping")
        ledger.record_failure(f"_ERROR_ {title}", "", title, str(year), error="no file link")
        ledger.save()
        return FAILED

    name = filename_from_url(href)
    return await fetch_document(
        context,
        ledger,
        name,
        href,
        os.path.join(year_dir, name),
        title=title,
        category=str(year),
        referer=YEAR_URL.format(year),
        retry_failed=retry_failed,
    )


async def scrape_year(context, year: int, out_dir: str, ledger: Ledger,
                      concurrency: int = CONCURRENCY, retry_failed: bool = False) -> Ledger:
    year_dir = os.path.join(out_dir, str(year))
    ensure_dir(year_dir)

    page = await context.new_page()
    try:
        items = await list_year_items(page, year)
    finally:
        await page.close()

    log(f"[CIDH {year}] Found {len(items)} results")

    sem = asyncio.Semaphore(max(1, concurrency))

    async def bounded(item):
        async with sem:
            return await process_item(context, ledger, item, year_dir, year, retry_failed)

    tasks = [asyncio.ensure_future(bounded(item)) for item in items]
    try:
        outcomes = await asyncio.gather(*tasks)
    except BaseException:
        # no item may keep writing to the ledger once the year has failed
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    log(
        f"[CIDH {year}] {outcomes.count(DOWNLOADED)} downloaded, "
        f"{outcomes.count(FAILED)} failed ({ledger.summary()})"
    )
    ledger.save()
    return ledger


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="IACHR merits reports downloader (one listing page per year)."
    )
    p.add_argument("--years", type=str, default="",
                   help=f"Comma list or ranges (e.g. '1999,2005-2010'). Default: {FIRST_YEAR}-current year.")
    p.add_argument("--out-dir", type=str, default=OUT_DIR)
    p.add_argument("--concurrency", type=int, default=CONCURRENCY)
    p.add_argument("--headed", action="store_true", help="Show the browser window (HTML pages cannot be printed to PDF).")
    p.add_argument("--retry-failed", action="store_true", help="Retry items recorded in the failure ledger.")
    p.add_argument("--fresh", action="store_true", help="Ignore existing ledgers.")
    return p.parse_args()


async def main():
    args = parse_args()

    all_years = range(FIRST_YEAR, datetime.now().year + 1)
    years = parse_range_string(args.years, all_years) or list(all_years)
    log(f"[CIDH] Years: {years[0]}..{years[-1]} ({len(years)} pages)")

    ensure_dir(args.out_dir)

    async with BrowserHandle(headless=not args.headed) as handle:
        for year in years:
            ledger = ledger_for_year(args.out_dir, year, resume=not args.fresh)
            try:
                await handle.run(
                    scrape_year, year, args.out_dir, ledger,
                    concurrency=args.concurrency, retry_failed=args.retry_failed,
                )
            except BrowserUnavailableError:
                ledger.save()
                raise
            except Exception as e:
                log(f"[CIDH {year}] ERROR: {e!r}, moving on to next year")
                ledger.save()
            await asyncio.sleep(SLEEP_BETWEEN_YEARS)

    log("[CIDH] ALL YEARS COMPLETE")


if __name__ == "__main__":
    asyncio.run(main())
