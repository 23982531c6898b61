# Dialnet: Revista Latinoamericana de Psicología, every article of every year.
# Dialnet throttles aggressively; throttled responses are retried after a long pause.
import os
import asyncio
import argparse
from typing import Dict, Any, List

from hr_browser import BrowserHandle, BrowserUnavailableError
from hr_common import log, ensure_dir, data_path, hashed_filename, clean_text, parse_range_string
from hr_fetch import (
    fetch_document,
    retry_with_delay,
    RateLimitError,
    RetryExhaustedError,
    SKIPPED,
    DOWNLOADED,
    FAILED,
)
from hr_ledger import Ledger

# ================= CONFIG =================

JOURNAL_URL = "https://dialnet.unirioja.es/servlet/revista?codigo=6173"
OUT_DIR = data_path("data_crawler_Revista_Latinoamericana_de_Psicología")

USER_AGENT = "Mozilla/5.0 (compatible; HRDocRipper/1.0)"
LAUNCH_ARGS = ["--no-sandbox"]

# Dialnet answers throttled clients with a 200 HTML page carrying this text
RATE_LIMIT_MARKER = "Ha sobrepasado los límites de acceso"

YEARS_JS = "links => links.map(a => ({ year: a.innerText.trim(), url: a.href }))"

ARTICLES_JS = """
items => items.map(li => {
  const t = li.querySelector('p.titulo > span.titulo > a');
  let href = null;
  for (const e of li.querySelectorAll('ul.enlaces > li')) {
    if (e.innerText.trim() === 'Texto completo') {
      const a = e.querySelector('a');
      href = a ? a.href : null;
      break;
    }
  }
  return { title: t ? t.innerText.trim() : null, href: href };
})
"""

RATE_LIMIT_DELAY = 15 * 60  # seconds
RATE_LIMIT_RETRIES = 3

SLEEP_BETWEEN_YEARS = 2.0

# =========================================


async def list_years(page) -> List[Dict[str, str]]:
    await page.goto(JOURNAL_URL, wait_until="networkidle")
    await page.wait_for_selector("body")
    return await page.eval_on_selector_all("td.ano > a", YEARS_JS)


async def load_year_articles(context, year_url: str) -> List[Dict[str, Any]]:
    page = await context.new_page()
    try:
        await page.goto(year_url, wait_until="networkidle")
        await page.wait_for_selector("body")
        if RATE_LIMIT_MARKER in await page.content():
            raise RateLimitError(year_url)
        return await page.eval_on_selector_all("#listadoDeArticulos li.articulo", ARTICLES_JS)
    finally:
        await page.close()


async def process_article(context, ledger: Ledger, article: Dict[str, Any], year_dir: str, year: str,
                          retry_failed: bool = False) -> str:
    title = clean_text(article.get("title"), "unknown")
    href = article.get("href")
    if not href:
        log(f"[Dialnet {year}] No 'Texto completo' for: {title}")
        return SKIPPED

    key = hashed_filename(href) + ".pdf"
    direct = href.lower().endswith(".pdf")

    return await fetch_document(
        context,
        ledger,
        key,
        href,
        os.path.join(year_dir, key),
        title=title,
        category=year,
        render=not direct,
        expect_content_type="application/pdf" if direct else None,
        rate_limit_marker=RATE_LIMIT_MARKER,
        retry_failed=retry_failed,
    )


async def scrape_year(context, ledger: Ledger, year: str, year_url: str, out_dir: str,
                      delay: float = RATE_LIMIT_DELAY, retries: int = RATE_LIMIT_RETRIES,
                      sleep=asyncio.sleep, retry_failed: bool = False) -> Ledger:
    year_dir = os.path.join(out_dir, year)
    ensure_dir(year_dir)

    articles = await retry_with_delay(
        load_year_articles, context, year_url, delay=delay, retries=retries, sleep=sleep
    )
    log(f"[Dialnet {year}] Found {len(articles)} articles")

    counts = {SKIPPED: 0, DOWNLOADED: 0, FAILED: 0}
    for article in articles:
        try:
            outcome = await retry_with_delay(
                process_article, context, ledger, article, year_dir, year,
                retry_failed=retry_failed, delay=delay, retries=retries, sleep=sleep,
            )
        except RetryExhaustedError as e:
            href = article.get("href") or ""
            log(f"[Dialnet {year}] Giving up on article after retries: {e}")
            ledger.record_failure(
                hashed_filename(href) + ".pdf", href,
                clean_text(article.get("title"), "unknown"), year, error=str(e),
            )
            ledger.save()
            outcome = FAILED
        counts[outcome] += 1

    log(
        f"[Dialnet {year}] {counts[DOWNLOADED]} downloaded, {counts[SKIPPED]} skipped, "
        f"{counts[FAILED]} failed"
    )
    return ledger


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Dialnet journal article downloader with rate-limit back-off."
    )
    p.add_argument("--years", type=str, default="", help="Comma list or ranges. Default: every year listed.")
    p.add_argument("--out-dir", type=str, default=OUT_DIR)
    p.add_argument("--delay", type=float, default=RATE_LIMIT_DELAY, help="Seconds to wait after a rate-limit page.")
    p.add_argument("--retries", type=int, default=RATE_LIMIT_RETRIES)
    p.add_argument("--headed", action="store_true")
    p.add_argument("--retry-failed", action="store_true")
    return p.parse_args()


def select_years(year_links: List[Dict[str, str]], raw: str) -> List[Dict[str, str]]:
    if not raw.strip():
        return year_links
    numeric = {int(y["year"]) for y in year_links if y.get("year", "").isdigit()}
    wanted = set(parse_range_string(raw, numeric))
    return [y for y in year_links if y.get("year", "").isdigit() and int(y["year"]) in wanted]


async def main():
    args = parse_args()
    ensure_dir(args.out_dir)

    # resume from previous runs
    ledger = Ledger.open(args.out_dir)

    async with BrowserHandle(headless=not args.headed, user_agent=USER_AGENT, launch_args=LAUNCH_ARGS) as handle:
        page = await handle.new_page()
        try:
            year_links = await list_years(page)
        finally:
            await page.close()

        years = select_years(year_links, args.years)
        log(f"[Dialnet] {len(year_links)} years listed, processing {len(years)}")

        for entry in years:
            year, year_url = entry["year"], entry["url"]
            log(f"[Dialnet {year}] Processing {year_url}")
            try:
                await handle.run(
                    scrape_year, ledger, year, year_url, args.out_dir,
                    delay=args.delay, retries=args.retries, retry_failed=args.retry_failed,
                )
            except BrowserUnavailableError:
                ledger.save()
                raise
            except Exception as e:
                log(f"[Dialnet {year}] ERROR: {e!r}")
            ledger.save()
            await asyncio.sleep(SLEEP_BETWEEN_YEARS)

    log(f"[Dialnet] FINISHED ({ledger.summary()})")


if __name__ == "__main__":
    asyncio.run(main())
