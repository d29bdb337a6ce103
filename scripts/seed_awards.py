#!/usr/bin/env python3
"""
Load award categories and nominees into PostgreSQL.

This script reads a JSON file of categories (each with its nominees), applies
the database schema if asked, and upserts everything by category slug and
nominee name. It can also grant the admin flag to existing users.

Usage:
    python seed_awards.py [--file FILE] [--apply-schema] [--grant-admin USER_ID ...]

Environment Variables:
    POSTGRES_HOST: PostgreSQL host (default: localhost)
    POSTGRES_PORT: PostgreSQL port (default: 5432)
    POSTGRES_DB: Database name (default: awards_db)
    POSTGRES_USER: Database user (default: awards_user)
    POSTGRES_PASSWORD: Database password
"""

import os
import sys
import json
import asyncio
import argparse
from pathlib import Path
from typing import List, Dict, Any

import asyncpg
from dotenv import load_dotenv
from tqdm import tqdm

load_dotenv()

SCHEMA_PATH = Path(__file__).parent.parent / 'services' / 'awards_api' / 'schema.sql'


def read_awards_file(path: Path) -> List[Dict[str, Any]]:
    """
    Read and check an awards JSON file.

    Expected format: {"categories": [{"slug", "name", "nominees": [{"name"}, ...]}, ...]}
    or the list of categories directly.

    Args:
        path: JSON file to read

    Returns:
        list: Category dictionaries, display_order filled from position

    Raises:
        ValueError: If the file does not match the expected format
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    categories = data['categories'] if isinstance(data, dict) else data
    if not isinstance(categories, list):
        raise ValueError("Expected a list of categories or a dict with 'categories' key")

    seen_slugs = set()
    for position, category in enumerate(categories):
        if not category.get('slug') or not category.get('name'):
            raise ValueError(f"Category #{position + 1} needs 'slug' and 'name'")
        if category['slug'] in seen_slugs:
            raise ValueError(f"Duplicate category slug: {category['slug']}")
        seen_slugs.add(category['slug'])

        category.setdefault('display_order', position)
        category.setdefault('nominees', [])
        for nominee_position, nominee in enumerate(category['nominees']):
            if not nominee.get('name'):
                raise ValueError(f"Nominee #{nominee_position + 1} in {category['slug']} needs 'name'")
            nominee.setdefault('display_order', nominee_position)

    return categories


class AwardsSeeder:
    """Seed categories, nominees and admins into PostgreSQL."""

    def __init__(self, dsn: str):
        self.dsn = dsn
        self.conn = None

    async def connect(self) -> bool:
        """
        Connect to PostgreSQL.

        Returns:
            bool: True if connection successful
        """
        try:
            self.conn = await asyncpg.connect(self.dsn)
            print("✓ Connected to PostgreSQL")
            return True
        except (OSError, asyncpg.PostgresError) as e:
            print(f"✗ Failed to connect to PostgreSQL: {e}", file=sys.stderr)
            return False

    async def apply_schema(self):
        await self.conn.execute(SCHEMA_PATH.read_text(encoding='utf-8'))
        print("✓ Schema applied")

    async def seed(self, categories: List[Dict[str, Any]]) -> dict:
        """
        Upsert categories and their nominees.

        Returns:
            dict: Statistics about the load operation
        """
        stats = {'categories': 0, 'nominees': 0}

        async with self.conn.transaction():
            for category in tqdm(categories, desc="Seeding categories", unit="category"):
                category_id = await self.conn.fetchval(
                    """
                    INSERT INTO categories (slug, name, description, display_order, is_active)
                    VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT (slug) DO UPDATE
                        SET name = EXCLUDED.name,
                            description = EXCLUDED.description,
                            display_order = EXCLUDED.display_order,
                            is_active = EXCLUDED.is_active
                    RETURNING id
                    """,
                    category['slug'],
                    category['name'],
                    category.get('description'),
                    category['display_order'],
                    category.get('is_active', True)
                )
                stats['categories'] += 1

                for nominee in category['nominees']:
                    existing = await self.conn.fetchval(
                        "SELECT id FROM nominees WHERE category_id = $1 AND name = $2",
                        category_id, nominee['name']
                    )
                    if existing:
                        await self.conn.execute(
                            """
                            UPDATE nominees
                            SET description = $2, image_url = $3, display_order = $4
                            WHERE id = $1
                            """,
                            existing,
                            nominee.get('description'),
                            nominee.get('image_url'),
                            nominee['display_order']
                        )
                    else:
                        await self.conn.execute(
                            """
                            INSERT INTO nominees (category_id, name, description, image_url, display_order)
                            VALUES ($1, $2, $3, $4, $5)
                            """,
                            category_id,
                            nominee['name'],
                            nominee.get('description'),
                            nominee.get('image_url'),
                            nominee['display_order']
                        )
                    stats['nominees'] += 1

        print(f"\n✓ Seed complete!")
        print(f"  Categories: {stats['categories']:,}")
        print(f"  Nominees: {stats['nominees']:,}")
        return stats

    async def grant_admin(self, user_ids: List[str]) -> int:
        """Set is_admin on existing users. Returns the number of users updated."""
        result = await self.conn.execute(
            "UPDATE users SET is_admin = TRUE WHERE id = ANY($1::text[])",
            user_ids
        )
        updated = int(result.split()[-1])
        print(f"✓ Granted admin to {updated} of {len(user_ids)} user(s)")
        return updated

    async def close(self):
        if self.conn:
            await self.conn.close()


async def run(args) -> int:
    dsn = (
        f"postgresql://{args.postgres_user}:{args.postgres_password}"
        f"@{args.postgres_host}:{args.postgres_port}/{args.postgres_db}"
    )
    seeder = AwardsSeeder(dsn)
    if not await seeder.connect():
        return 1

    try:
        if args.apply_schema:
            await seeder.apply_schema()
        if args.file:
            await seeder.seed(read_awards_file(args.file))
        if args.grant_admin:
            await seeder.grant_admin(args.grant_admin)
    finally:
        await seeder.close()
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Load award categories and nominees into PostgreSQL'
    )
    parser.add_argument('--postgres-host', default=os.getenv('POSTGRES_HOST', 'localhost'))
    parser.add_argument('--postgres-port', type=int, default=int(os.getenv('POSTGRES_PORT', 5432)))
    parser.add_argument('--postgres-db', default=os.getenv('POSTGRES_DB', 'awards_db'))
    parser.add_argument('--postgres-user', default=os.getenv('POSTGRES_USER', 'awards_user'))
    parser.add_argument('--postgres-password', default=os.getenv('POSTGRES_PASSWORD', 'awards_pass'))
    parser.add_argument(
        '--file',
        type=Path,
        default=None,
        help='JSON file with categories and nominees'
    )
    parser.add_argument(
        '--apply-schema',
        action='store_true',
        help='Create tables and procedures before seeding'
    )
    parser.add_argument(
        '--grant-admin',
        nargs='+',
        metavar='USER_ID',
        help='Mark these existing users as administrators'
    )

    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        print("\n\n✗ Seed interrupted by user", file=sys.stderr)
        sys.exit(1)
    except (ValueError, json.JSONDecodeError) as e:
        print(f"\n✗ Invalid awards file: {e}", file=sys.stderr)
        sys.exit(1)
    except asyncpg.PostgresError as e:
        print(f"\n✗ Database error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
