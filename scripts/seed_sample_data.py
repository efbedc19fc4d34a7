import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.portal import create_app
from app.portal.db import session_scope
from app.portal.modules.colleges.service import seed_sample_catalogue


def main() -> None:
    """Load the demo college/course catalogue into DATABASE_URL. Safe to re-run."""
    app = create_app()
    with session_scope(app) as s:
        created = seed_sample_catalogue(s)
    print(f"Sample data: {created['colleges']} colleges, {created['courses']} courses created.")


if __name__ == "__main__":
    main()
