"""Issue an API key for the external tool API.

Usage:
    python scripts/issue_tool_key.py <company_id> <name> [tool ...]

With no tools listed the key may use every tool. The raw key is printed once;
only its hash is stored.
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.chains.agent_tools import TOOL_NAMES  # noqa: E402
from app.db.tool_access_keys import create_access_key  # noqa: E402


def main() -> None:
    if len(sys.argv) < 3:
        print("Usage: python scripts/issue_tool_key.py <company_id> <name> [tool ...]")
        sys.exit(1)

    company_id, name = sys.argv[1], sys.argv[2]
    tools = sys.argv[3:] or None

    if tools:
        unknown = sorted(set(tools) - TOOL_NAMES)
        if unknown:
            print(f"Unknown tools: {', '.join(unknown)}")
            print(f"Available: {', '.join(sorted(TOOL_NAMES))}")
            sys.exit(1)

    raw_key, row = create_access_key(company_id, name, enabled_tools=tools)

    print(f"Key id:   {row['id']}")
    print(f"Company:  {company_id}")
    print(f"Tools:    {', '.join(tools) if tools else 'all'}")
    print(f"API key:  {raw_key}")
    print("\nStore the key now; it cannot be shown again.")


if __name__ == "__main__":
    main()
