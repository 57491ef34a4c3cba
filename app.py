import os

from dinebook import create_app, celery
from dinebook.config import config
from dinebook import tasks  # noqa: F401  registers the Celery tasks

app = create_app(config[os.getenv("FLASK_CONFIG", "default")])
app.app_context().push()


if __name__ == '__main__':
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 5000)), debug=False)
