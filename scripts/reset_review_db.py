"""
Reset the review database (SRS).

DANGEROUS: This deletes all review state and history!
Only use when you want to start fresh for testing.

Usage:
    python -m scripts.reset_review_db
"""

from zhquiz.srs import ReviewStore


def main():
    print("=" * 60)
    print("WARNING: Reset Review Database")
    print("=" * 60)
    print()
    print("This will DELETE all review state:")
    print("  - All review items (SRS level, next review, streaks)")
    print("  - All review events (logs of past marks)")
    print()

    response = input("Are you sure you want to reset? (type 'yes' to confirm): ")

    if response.lower() == "yes":
        print("\nResetting database...")
        ReviewStore().reset_db()
        print("✓ Database reset complete!")
        print("\nThe database now has empty tables ready for new reviews.")
    else:
        print("\nCancelled. No changes made.")


if __name__ == "__main__":
    main()
