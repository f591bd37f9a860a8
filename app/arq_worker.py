from arq import cron
from arq.connections import RedisSettings as ArqRedisSettings

from app.core.config import RedisSettings
from app.tasks.cleanup_task import shutdown, startup, sweep_orphaned_uploads

app_redis_config = RedisSettings()


class WorkerSettings:
    functions = [sweep_orphaned_uploads]
    cron_jobs = [
        cron(sweep_orphaned_uploads, minute={0, 30}, run_at_startup=True),
    ]
    on_startup = startup
    on_shutdown = shutdown

    redis_settings = ArqRedisSettings(
        host=app_redis_config.redis_host,
        port=app_redis_config.redis_port,
        password=app_redis_config.redis_password,
    )
