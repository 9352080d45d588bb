"""Seed reference data and import question banks.

    python seed.py                      # categories, forum categories, achievements
    python seed.py questions.json       # ...then import a JSON question bank
    python seed.py --reset bank.json    # drop and recreate the schema first
"""
import json
import logging
import sys

from services.cache_service import get_cache_service
from services.database_service import get_database_service
from services.question_repository import get_question_repository
from services.reference_data import seed_reference_data

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("seed")


def load_question_bank(path: str) -> list:
    with open(path, encoding="utf-8") as handle:
        data = json.load(handle)
    if isinstance(data, dict):
        data = data.get("questions", [])
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a list of questions or a {{'questions': [...]}} object")
    return data


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    reset = "--reset" in argv
    files = [arg for arg in argv if not arg.startswith("--")]

    if reset:
        get_database_service().reset_schema()
        get_cache_service().clear_cache("question:*")

    created = seed_reference_data()
    logger.info(f"Reference data: {created} rows created")

    repository = get_question_repository()
    for path in files:
        try:
            items = load_question_bank(path)
        except (OSError, ValueError) as e:
            logger.error(f"Could not read {path}: {e}")
            return 1
        result = repository.import_questions(items)
        logger.info(f"{path}: imported {result['imported']}, skipped {result['skipped']}")

    logger.info(f"Question bank size: {repository.count_questions()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
