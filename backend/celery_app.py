from app import create_app
from app.celery_app import create_celery_app

# Worker / beat entrypoint: `celery -A celery_app.celery worker -B`
flask_app = create_app()
celery = create_celery_app(flask_app)

import app.tasks.settlement_tasks  # noqa: E402,F401
import app.tasks.webhook_tasks  # noqa: E402,F401
