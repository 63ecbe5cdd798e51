#!/usr/bin/env python3
"""Check the tool engine schema using the Supabase client."""
import sys
from pathlib import Path

sys.path.insert(0, '.')

from app.db.supabase_client import get_supabase

MIGRATION_FILE = Path(__file__).parent / "migrations" / "0001_tool_engine.sql"

REQUIRED_TABLES = [
    "companies",
    "projects",
    "contacts",
    "project_contacts",
    "project_notes",
    "project_tasks",
    "communications",
    "company_integrations",
    "action_records",
    "chat_sessions",
    "webhook_events",
    "tool_access_keys",
    "integration_job_queue",
    "notifications",
    "knowledge_documents",
]


def run_migration():
    supabase = get_supabase()

    missing = []
    print(f"🚀 Checking schema from {MIGRATION_FILE.name}")

    for table in REQUIRED_TABLES:
        try:
            supabase.table(table).select('id').limit(1).execute()
            print(f"✅ {table}")
        except Exception as e:
            print(f"❌ {table}: {e}")
            missing.append(table)

    try:
        supabase.rpc('match_documents', {
            'query_embedding': [0.0] * 1536,
            'match_count': 1,
            '_company_id': '00000000-0000-0000-0000-000000000000',
        }).execute()
        print("✅ match_documents()")
    except Exception as e:
        print(f"❌ match_documents(): {e}")
        missing.append("match_documents")

    if missing:
        print(f"\n❌ Missing: {', '.join(missing)}")
        print("💡 Run this SQL in your Supabase SQL editor:\n")
        print("=" * 60)
        print(MIGRATION_FILE.read_text())
        print("=" * 60)
        sys.exit(1)

    print("\n✅ Schema is up to date!")


if __name__ == "__main__":
    run_migration()
