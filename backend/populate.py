"""
Replace the product catalog with the contents of a JSON file.

    python populate.py product.json
"""
import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List

import structlog
from pydantic import ValidationError as SchemaValidationError
from pymongo.database import Database

import database
from database import create_document, ensure_indexes
from logging_config import configure_logging
from schemas import Product as ProductSchema

logger = structlog.get_logger(__name__)


def load_products(raw: List[Dict[str, Any]]) -> List[ProductSchema]:
    # slug and base_price are derived by the schema
    return [ProductSchema(**item) for item in raw]


def populate(db: Database, products: List[ProductSchema]) -> int:
    deleted = db["product"].delete_many({}).deleted_count
    logger.info("products_deleted", count=deleted)
    for product in products:
        create_document(db, "product", product)
    ensure_indexes(db)
    logger.info("products_uploaded", count=len(products))
    return len(products)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Load the product catalog into MongoDB")
    parser.add_argument("file", type=Path, help="JSON array of products")
    args = parser.parse_args(argv)

    configure_logging()
    if database.db is None:
        logger.error("database_not_configured")
        return 1
    try:
        raw = json.loads(args.file.read_text(encoding="utf-8"))
        products = load_products(raw)
    except (OSError, json.JSONDecodeError, SchemaValidationError, TypeError) as e:
        logger.error("product_file_invalid", file=str(args.file), error=str(e))
        return 1
    populate(database.db, products)
    return 0


if __name__ == "__main__":
    sys.exit(main())
