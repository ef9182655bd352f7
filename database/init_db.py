"""Create the marketplace schema and optionally load demo data.

Run from the project root: ``python -m database.init_db``.
"""

import os

from marketplace import create_app
from marketplace.db import get_db, init_db
from marketplace.seed import seed_demo


app = create_app()


if __name__ == "__main__":
    with app.app_context():
        init_db()
        if os.environ.get("SEED_DEMO", "0").strip().lower() in {"1", "true", "yes", "sim"}:
            created = seed_demo(get_db())
            if created:
                print(f"Dados de demonstracao criados: cliente {created['cliente_id']}.")
    print("Database initialized.")
