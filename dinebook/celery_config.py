from celery import Celery


def make_celery(app, celery=None):
    celery = celery or Celery(app.import_name)
    celery.conf.update(app.config["CELERY_CONFIG"])

    celery.conf.update(
        task_ignore_result=False,
        track_started=True,
        accept_content=['json'],
        result_expires=3600
    )

    # Tasks resolve the Flask app at call time, so a re-created app (tests,
    # reloads) is picked up by tasks that were already registered.
    celery.flask_app = app

    class ContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with self.app.flask_app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = ContextTask
    celery.set_default()
    app.extensions["celery"] = celery
    return celery
