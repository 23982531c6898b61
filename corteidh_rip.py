import os
import asyncio
import argparse
from typing import Dict, Any, List

from hr_browser import BrowserHandle, BrowserUnavailableError
from hr_common import log, ensure_dir, data_path, filename_from_url, clean_text
from hr_fetch import fetch_document, DOWNLOADED, FAILED, SKIPPED
from hr_ledger import Ledger

# ================= CONFIG =================

BASE_SITE = "https://www.corteidh.or.cr"

SECTIONS = {
    "opiniones_consultivas": {
        "url": f"{BASE_SITE}/opiniones_consultivas.cfm",
        "out_dir": data_path("data", "opiniones_consultivas"),
    },
    "casos_sentencias": {
        "url": f"{BASE_SITE}/casos_sentencias.cfm",
        "out_dir": data_path("data", "casos_sentencias"),
    },
}

LIST_SELECTOR = "ul#ul_datos"
ITEM_SELECTOR = "li.tr_normal.search-result.row"

# kind -> link selector inside one result
LINK_SELECTORS = {
    "pdf": 'tr:first-child a[href$=".pdf"]',
    "doc": 'tr:first-child a[href$=".doc"], tr:first-child a[href$=".docx"]',
}

ITEMS_JS = """
(els, selectors) => els.map(li => {
  const row = li.querySelector('tr:first-child');
  const out = { title: (row ? row.innerText : li.innerText).trim() };
  for (const [kind, sel] of Object.entries(selectors)) {
    const a = li.querySelector(sel);
    out[kind] = a ? a.href : null;
  }
  return out;
})
"""

SPANISH_MARKER = "_esp."

SLEEP_BETWEEN_DOWNLOADS = 0.75

# =========================================


def is_spanish(url: str) -> bool:
    return SPANISH_MARKER in filename_from_url(url).lower()


async def list_results(page, url: str) -> List[Dict[str, Any]]:
    await page.goto(url, wait_until="networkidle")
    await page.wait_for_selector(LIST_SELECTOR)
    await page.wait_for_selector(ITEM_SELECTOR)
    return await page.eval_on_selector_all(ITEM_SELECTOR, ITEMS_JS, LINK_SELECTORS)


async def process_result(context, ledger: Ledger, result: Dict[str, Any], section: str,
                         out_dir: str, referer: str, spanish_only: bool = False,
                         retry_failed: bool = False) -> Dict[str, str]:
    """
    Fetch the PDF and DOC link of one search result into pdf/ and doc/.
    Returns kind -> outcome for the links that were present.
    """
    title = clean_text(result.get("title"), "unknown")
    outcomes = {}

    for kind in LINK_SELECTORS:
        href = result.get(kind)
        if not href:
            log(f"[CorteIDH {section}] No {kind.upper()} link for '{title[:60]}'")
            continue
        if spanish_only and not is_spanish(href):
            continue

        name = filename_from_url(href)
        outcomes[kind] = await fetch_document(
            context,
            ledger,
            name,
            href,
            os.path.join(out_dir, kind, name),
            title=title,
            category=f"{section}/{kind}",
            render=False,
            referer=referer,
            retry_failed=retry_failed,
        )
        if outcomes[kind] != SKIPPED:
            await asyncio.sleep(SLEEP_BETWEEN_DOWNLOADS)

    return outcomes


async def scrape_section(context, section: str, cfg: Dict[str, str], ledger: Ledger,
                         spanish_only: bool = False, retry_failed: bool = False) -> Ledger:
    out_dir = cfg["out_dir"]
    for kind in LINK_SELECTORS:
        ensure_dir(os.path.join(out_dir, kind))

    page = await context.new_page()
    try:
        results = await list_results(page, cfg["url"])
    finally:
        await page.close()

    log(f"[CorteIDH {section}] Found {len(results)} search results")

    counts = {DOWNLOADED: 0, FAILED: 0, SKIPPED: 0}
    for result in results:
        outcomes = await process_result(
            context, ledger, result, section, out_dir, cfg["url"],
            spanish_only=spanish_only, retry_failed=retry_failed,
        )
        for outcome in outcomes.values():
            counts[outcome] += 1

    log(
        f"[CorteIDH {section}] {counts[DOWNLOADED]} downloaded, {counts[SKIPPED]} skipped, "
        f"{counts[FAILED]} failed"
    )
    ledger.save()
    return ledger


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Inter-American Court of Human Rights PDF/DOC downloader."
    )
    p.add_argument("--sections", type=str, default=",".join(SECTIONS),
                   help=f"Comma list of sections ({', '.join(SECTIONS)}).")
    p.add_argument("--spanish-only", action="store_true", help="Only fetch *_esp.* documents.")
    p.add_argument("--headed", action="store_true")
    p.add_argument("--retry-failed", action="store_true")
    return p.parse_args()


async def main():
    args = parse_args()

    chosen = [s.strip() for s in args.sections.split(",") if s.strip() in SECTIONS]
    if not chosen:
        log("No valid sections selected. Exiting.")
        raise SystemExit(1)

    async with BrowserHandle(headless=not args.headed) as handle:
        for section in chosen:
            cfg = SECTIONS[section]
            ensure_dir(cfg["out_dir"])
            ledger = Ledger.open(cfg["out_dir"])

            log(f"=== SECTION {section} START ===")
            try:
                await handle.run(
                    scrape_section, section, cfg, ledger,
                    spanish_only=args.spanish_only, retry_failed=args.retry_failed,
                )
            except BrowserUnavailableError:
                ledger.save()
                raise
            except Exception as e:
                log(f"[CorteIDH {section}] ERROR: {e!r}")
                ledger.save()
            log(f"=== SECTION {section} COMPLETE ({ledger.summary()}) ===")

    log("[CorteIDH] ALL SECTIONS COMPLETE")


if __name__ == "__main__":
    asyncio.run(main())
