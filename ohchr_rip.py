# OHCHR documents listing: walks the paginated listing, visits every document
# page and records its metadata and download versions.
import os
import asyncio
import argparse
from urllib.parse import urljoin
from typing import Dict, Any, List, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from hr_browser import BrowserHandle, is_disconnect_error
from hr_common import log, ensure_dir, data_path, hashed_filename, url_extension, clean_text
from hr_fetch import fetch_document, resolve_redirects, SKIPPED, DOWNLOADED, FAILED
from hr_ledger import Ledger

# ================= CONFIG =================

BASE_SITE = "https://www.ohchr.org"
LISTING_URL = (
    "https://www.ohchr.org/es/documents-listing"
    "?field_published_date_value[min]=&field_published_date_value[max]="
    "&sort_bef_combine=field_published_date_value_DESC"
)
OUT_DIR = data_path("data_crawler_OHCHR_Documents")

DOCUMENTS_FILE = "documents.json"
FAILED_FILE = "failed_documents.json"
VERSIONS_FILE = "versions_success.json"
VERSIONS_FAILED_FILE = "versions_failed.json"

LISTING_SELECTOR = "div.card-2-listing-items"
CARD_SELECTOR = "div.card-2-item-wrapper"
ARTICLE_SELECTOR = "article.oh-node.node-document"
LISTING_TIMEOUT_MS = 10000

LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]

CARDS_JS = """
cards => cards.map(card => {
  const text = sel => { const el = card.querySelector(sel); return el ? el.innerText.trim() : null; };
  const a = card.querySelector('a.card-2__link');
  return {
    href: a ? a.getAttribute('href') : null,
    title: text('h2.card-2__title span'),
    category: text('p.eyebrow-1'),
    date: text('p.eyebrow-3'),
    source: text('p.eyebrow-4'),
  };
})
"""

NEXT_PAGE_JS = """
() => {
  const a = document.querySelector('li.pager__item--next a.pager__item-link--next');
  if (!a) return null;
  if (a.parentElement.classList.contains('pager__item--disabled') || a.getAttribute('rel') !== 'next') return null;
  return a.href;
}
"""

DETAIL_JS = """
() => {
  const text = sel => { const el = document.querySelector(sel); return el ? el.innerText.trim() : null; };
  const labelled = label => {
    for (const el of document.querySelectorAll('.images-besides-text-3__text-item--label')) {
      if (el.innerText.includes(label)) {
        const v = el.nextElementSibling;
        return v ? v.innerText.trim() : null;
      }
    }
    return null;
  };
  const versions = [];
  const header = document.querySelector('h2.resource__heading.heading--5');
  const box = header ? header.nextElementSibling : null;
  if (box) {
    box.querySelectorAll('a.resource__file-types-item').forEach(link => {
      const lang = link.closest('.resource-language-container');
      const label = lang && lang.previousElementSibling ? lang.previousElementSibling.innerText.trim() : null;
      versions.push({ language: label, type: link.innerText.trim(), href: link.href });
    });
  }
  const article = document.querySelector('article.oh-node.node-document');
  return {
    title: text('h2.hero-1__title'),
    category: text('span.text--eyebrow.hero-1__eyebrow-text'),
    date: text('p.eyebrow-3'),
    symbol: text('div.hero-1__document-landing-content-item:nth-child(2) h3'),
    focus: text('div.hero-1__document-landing-content-item:nth-child(3) h3'),
    summary: text('.node-document__body .wysiwyg-content'),
    published_by: labelled('Publicado por:'),
    spoken_by: labelled('Pronunciado por:'),
    tags: Array.from(document.querySelectorAll('.node-document__tags .tags__link-item')).map(el => el.innerText.trim()),
    related_documents: Array.from(document.querySelectorAll('.node-document__body .views-row a')).map(el => el.href),
    versions: versions,
    content_html: article ? article.innerHTML : null,
  };
}
"""

SLEEP_BETWEEN_PAGES = 1.5
SLEEP_BETWEEN_DOCUMENTS = 0.5

# =========================================


async def extract_document_details(context, document_url: str) -> Dict[str, Any]:
    page = await context.new_page()
    try:
        await page.goto(document_url, wait_until="networkidle")
        await page.wait_for_selector(ARTICLE_SELECTOR)
        data = await page.evaluate(DETAIL_JS)
    finally:
        await page.close()

    raw_versions = [v for v in (data.get("versions") or []) if v.get("href")]
    resolved = await asyncio.gather(*(resolve_redirects(context, v["href"]) for v in raw_versions))
    versions = [
        {
            "language": clean_text(v.get("language"), "Unknown"),
            "type": clean_text(v.get("type")),
            "download_url": url,
        }
        for v, url in zip(raw_versions, resolved)
    ]

    return {
        "url": document_url,
        "title": clean_text(data.get("title"), "Untitled"),
        "category": clean_text(data.get("category"), "Uncategorized"),
        "date": clean_text(data.get("date"), "No date"),
        "symbol": clean_text(data.get("symbol"), "No symbol"),
        "focus": clean_text(data.get("focus"), "No focus"),
        "published_by": clean_text(data.get("published_by"), "Unknown"),
        "spoken_by": clean_text(data.get("spoken_by"), "Unknown"),
        "summary": (data.get("summary") or "").strip() or "No summary",
        "tags": data.get("tags") or [],
        "related_documents": data.get("related_documents") or [],
        "versions": versions,
        "content_html": data.get("content_html") or "",
    }


async def download_versions(context, files_ledger: Ledger, details: Dict[str, Any], files_dir: str,
                            languages: Optional[List[str]] = None, retry_failed: bool = False) -> int:
    """
    Fetch each version file of one document. Returns number of new files.
    """
    wanted = {lang.lower() for lang in (languages or [])}
    downloaded = 0

    for version in details["versions"]:
        if wanted and version["language"].lower() not in wanted:
            continue

        url = version["download_url"]
        ext = url_extension(url)
        if not ext and version["type"].isalnum():
            ext = "." + version["type"].lower()
        key = hashed_filename(url) + ext

        outcome = await fetch_document(
            context,
            files_ledger,
            key,
            url,
            os.path.join(files_dir, key),
            title=details["title"],
            category=details["category"],
            render=False,
            referer=details["url"],
            extension_from_type=not ext,
            retry_failed=retry_failed,
            extra={"language": version["language"], "type": version["type"], "document": details["url"]},
        )
        if outcome == DOWNLOADED:
            downloaded += 1
    return downloaded


def recorded_details(ledger: Ledger, card: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    href = card.get("href")
    if not href:
        return None
    entry = ledger.success.get(hashed_filename(urljoin(BASE_SITE, href)))
    if entry is None:
        return None
    return dict(entry, versions=entry.get("versions") or [])


async def process_card(context, ledger: Ledger, card: Dict[str, Any], retry_failed: bool = False) -> Optional[Dict[str, Any]]:
    """
    Visit one listed document. Returns its details when newly recorded, None otherwise.
    """
    href = card.get("href")
    if not href:
        log("[OHCHR] Card without link, skipping")
        return None

    url = urljoin(BASE_SITE, href)
    key = hashed_filename(url)
    title = clean_text(card.get("title"), "Untitled")

    if key in ledger.success:
        return None
    if ledger.is_failed(key) and not retry_failed:
        return None

    try:
        details = await extract_document_details(context, url)
    except Exception as e:
        if is_disconnect_error(e):
            raise
        log(f"[OHCHR] ERROR extracting {url}: {e!r}")
        ledger.record_failure(key, url, title, clean_text(card.get("category"), "Uncategorized"), error=str(e))
        ledger.save()
        return None

    details["listing"] = {
        "title": title,
        "category": clean_text(card.get("category")),
        "date": clean_text(card.get("date")),
        "source": clean_text(card.get("source")),
    }
    ledger.record_success(
        key,
        url,
        details["title"],
        details["category"],
        extra={k: v for k, v in details.items() if k not in ("url", "title", "category")},
    )
    ledger.save()
    log(f"[OHCHR] Document recorded: {details['title'][:80]}")
    return details


async def crawl_listing(context, ledger: Ledger, start_url: str = LISTING_URL, max_pages: int = 0,
                        retry_failed: bool = False, files_ledger: Optional[Ledger] = None,
                        files_dir: Optional[str] = None, languages: Optional[List[str]] = None,
                        sleep=asyncio.sleep) -> Ledger:
    """
    Walk the listing page by page until there is no enabled "next" link
    (or max_pages is reached). Versions are downloaded when files_ledger is given.
    """
    page = await context.new_page()
    try:
        await page.goto(start_url, wait_until="networkidle")
        page_num = 1

        while True:
            log(f"[OHCHR p{page_num}] Processing page")
            try:
                await page.wait_for_selector(LISTING_SELECTOR, timeout=LISTING_TIMEOUT_MS)
            except PlaywrightTimeoutError:
                log(f"[OHCHR p{page_num}] No document listing on this page, stopping")
                break

            cards = await page.eval_on_selector_all(CARD_SELECTOR, CARDS_JS)
            log(f"[OHCHR p{page_num}] Found {len(cards)} documents")

            for card in cards:
                details = await process_card(context, ledger, card, retry_failed)
                if details is not None:
                    await sleep(SLEEP_BETWEEN_DOCUMENTS)
                else:
                    details = recorded_details(ledger, card)
                if details is not None and files_ledger is not None and files_dir:
                    await download_versions(context, files_ledger, details, files_dir, languages, retry_failed)

            if max_pages and page_num >= max_pages:
                log(f"[OHCHR p{page_num}] Page cap reached, stopping")
                break

            next_url = await page.evaluate(NEXT_PAGE_JS)
            if not next_url:
                log(f"[OHCHR p{page_num}] No next page, finished")
                break

            await page.goto(next_url, wait_until="networkidle")
            page_num += 1
            await sleep(SLEEP_BETWEEN_PAGES)
    finally:
        await page.close()

    return ledger


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="OHCHR documents listing crawler.")
    p.add_argument("--url", type=str, default=LISTING_URL, help="Listing URL to start from.")
    p.add_argument("--out-dir", type=str, default=OUT_DIR)
    p.add_argument("--max-pages", type=int, default=0, help="Stop after N listing pages (0 = no limit).")
    p.add_argument("--download-versions", action="store_true", help="Also download every version file.")
    p.add_argument("--languages", type=str, default="", help="Comma list of version languages to download.")
    p.add_argument("--headed", action="store_true")
    p.add_argument("--retry-failed", action="store_true")
    return p.parse_args()


async def main():
    args = parse_args()
    ensure_dir(args.out_dir)

    ledger = Ledger.open(args.out_dir, success_name=DOCUMENTS_FILE, failed_name=FAILED_FILE)

    files_ledger = None
    files_dir = None
    if args.download_versions:
        files_dir = os.path.join(args.out_dir, "files")
        ensure_dir(files_dir)
        files_ledger = Ledger.open(files_dir, success_name=VERSIONS_FILE, failed_name=VERSIONS_FAILED_FILE)

    languages = [s.strip() for s in args.languages.split(",") if s.strip()]

    async with BrowserHandle(headless=not args.headed, launch_args=LAUNCH_ARGS) as handle:
        try:
            await handle.run(
                crawl_listing, ledger, args.url,
                max_pages=args.max_pages, retry_failed=args.retry_failed,
                files_ledger=files_ledger, files_dir=files_dir, languages=languages,
            )
        except Exception as e:
            log(f"[OHCHR] FATAL ERROR: {e!r}")
            raise
        finally:
            ledger.save()
            if files_ledger is not None:
                files_ledger.save()

    log(f"[OHCHR] Documents saved to {ledger.success_path} ({ledger.summary()})")


if __name__ == "__main__":
    asyncio.run(main())
