import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from eventpilot import create_app, db
import eventpilot.models  # noqa: F401


def create_tables():
    app = create_app()
    with app.app_context():
        db.create_all()
        app.logger.info(f"Created database tables: {', '.join(sorted(db.metadata.tables))}")


if __name__ == "__main__":
    create_tables()
