"""
Reset the local lexical cache (MongoDB).

Drops cached records so the next lookups refetch them from the remote
source. Review state is not touched.

Usage:
    python -m scripts.reset_cache
    python -m scripts.reset_cache --category vocab
"""

import argparse

from zhquiz.cache import MongoLexicalStore
from zhquiz.mongo import close_client
from zhquiz.schemas import Category


def reset_cache(category=None, yes=False):
    scope = f"the '{category}' collection" if category else "ALL cached collections"

    print("=" * 60)
    print("WARNING: Reset Lexical Cache")
    print("=" * 60)
    print()
    print(f"This will DELETE {scope}.")
    print("Records are refetched from the remote source on the next lookup.")
    print()

    if not yes:
        response = input("Are you sure you want to reset? (type 'yes' to confirm): ")
        if response.lower() != "yes":
            print("\nCancelled. No changes made.")
            return

    store = MongoLexicalStore()
    categories = [Category(category)] if category else list(Category)
    for c in categories:
        print(f"  {c.value:<10} {store.count(c)} records")

    print("\nResetting cache...")
    store.reset(Category(category) if category else None)
    print("✓ Cache reset complete!")


def main():
    parser = argparse.ArgumentParser(description="Reset the local lexical cache")
    parser.add_argument(
        "--category",
        choices=[c.value for c in Category],
        help="Only reset this category (default: all)"
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Don't ask for confirmation"
    )

    args = parser.parse_args()

    try:
        reset_cache(category=args.category, yes=args.yes)
    finally:
        close_client()


if __name__ == "__main__":
    main()
