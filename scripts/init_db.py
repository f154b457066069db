#!/usr/bin/env python3
import argparse

from gateway_indexer.db import create_db_and_tables, engine, make_engine

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the indexer schema")
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    args = parser.parse_args()

    target = make_engine(args.database_url) if args.database_url else engine
    print(f"Creating tables on {target.url.render_as_string(hide_password=True)}...")
    try:
        create_db_and_tables(target)
        print("Tables created successfully!")
    except Exception as e:
        print(f"Error creating tables: {e}")
        raise SystemExit(1)
