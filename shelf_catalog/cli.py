import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List

from tqdm import tqdm

from shelf_catalog.config import configure_logging, load_settings
from shelf_catalog.core.aggregator import MetadataAggregator
from shelf_catalog.core.ingest import bulk_add_books
from shelf_catalog.core.pipeline import DetectionPipeline
from shelf_catalog.errors import BatchValidationError, DetectionError, ShelfCatalogError
from shelf_catalog.storage import SqliteCatalog

logger = logging.getLogger(__name__)


def _dump(payload: Any, output: str = None) -> None:
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text)
        logger.info("Wrote %s", output)
    else:
        print(text)


def cmd_detect(args, settings) -> int:
    catalog = SqliteCatalog(settings.catalog_db_path) if args.family_id else None
    pipeline = DetectionPipeline.from_settings(settings, catalog)
    results: List[Dict[str, Any]] = []
    failures = 0

    async def run():
        nonlocal failures
        for path in tqdm(args.images, desc="Detecting", unit="image", disable=len(args.images) < 2):
            with open(path, "rb") as f:
                data = f.read()
            try:
                result = await pipeline.detect(data, family_id=args.family_id)
                results.append({"image": path, **result.model_dump(by_alias=True)})
            except DetectionError as e:
                failures += 1
                logger.error("%s: %s", path, e)
                results.append({"image": path, "success": False, "error": e.to_response()})

    asyncio.run(run())
    _dump(results if len(results) > 1 else results[0], args.output)
    return 1 if failures else 0


def cmd_search(args, settings) -> int:
    aggregator = MetadataAggregator.from_settings(settings)
    books = asyncio.run(aggregator.search_books(args.query, provider=args.provider, max_results=args.max_results))
    _dump([b.model_dump() for b in books])
    return 0


def cmd_lookup(args, settings) -> int:
    aggregator = MetadataAggregator.from_settings(settings)
    best, score = asyncio.run(aggregator.search_book_details(args.title, args.author))
    _dump({"match": best.model_dump() if best else None, "score": score})
    return 0 if best else 1


def cmd_bulk_add(args, settings) -> int:
    with open(args.file, "r", encoding="utf-8") as f:
        data = json.load(f)
    books = data.get("books", []) if isinstance(data, dict) else data
    catalog = SqliteCatalog(settings.catalog_db_path)
    try:
        result = bulk_add_books(catalog, args.family_id, books)
    except BatchValidationError as e:
        logger.error("%s", e)
        return 2
    finally:
        catalog.close()
    _dump(result.to_response())
    return 1 if result.failed else 0


def cmd_serve(args, settings) -> int:
    import uvicorn

    uvicorn.run("shelf_catalog.app.main:app", host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shelf-catalog", description="Detect and catalog books from shelf photos")
    parser.add_argument("--env-file", default=".env", help="dotenv file to load")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("detect", help="Detect books in one or more shelf images")
    p.add_argument("images", nargs="+")
    p.add_argument("--family-id", default=None, help="Mark books this family already owns")
    p.add_argument("--output", default=None, help="Write JSON here instead of stdout")
    p.set_defaults(func=cmd_detect)

    p = sub.add_parser("search", help="Search bibliographic providers")
    p.add_argument("query")
    p.add_argument("--provider", default="auto")
    p.add_argument("--max-results", type=int, default=10)
    p.set_defaults(func=cmd_search)

    p = sub.add_parser("lookup", help="Best metadata match for a title/author")
    p.add_argument("--title", required=True)
    p.add_argument("--author", default=None)
    p.set_defaults(func=cmd_lookup)

    p = sub.add_parser("bulk-add", help="Add confirmed books from a JSON file")
    p.add_argument("file")
    p.add_argument("--family-id", required=True)
    p.set_defaults(func=cmd_bulk_add)

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.set_defaults(func=cmd_serve)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(args.env_file)
    configure_logging(settings.log_level)
    try:
        return args.func(args, settings)
    except (ShelfCatalogError, ValueError) as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
